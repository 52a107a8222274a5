"""Tests for search-result compression."""

import json

from conftest import make_document, make_hit, make_response

from compy_agent.compressor import NO_RESULTS_NOTE, compress, compress_hit, table
from compy_agent.models import Recommendation
from compy_agent.search import parse_hit, parse_search_response


def _results(hits, **kwargs):
    return parse_search_response(make_response(hits, **kwargs), "televisor led 55")


class TestCompressHit:
    def test_features_skip_unspecified(self, document):
        product = compress_hit(parse_hit(make_hit(document)))
        assert "Resolución: 4K UHD" in product.features
        assert "Puertos HDMI: 3" in product.features
        assert "Bluetooth" not in product.features
        assert "NO ESPECIFICA" not in product.features

    def test_single_image(self, document):
        product = compress_hit(parse_hit(make_hit(document)))
        assert product.image == "https://img.compy.pe/lg-55uq8050/1.jpg"

    def test_no_image(self):
        product = compress_hit(parse_hit(make_hit(images=[])))
        assert product.image is None

    def test_prefers_compy_url(self, document):
        assert compress_hit(parse_hit(make_hit(document))).url == "https://compy.pe/p/lg-55uq8050psb"

    def test_falls_back_to_store_url(self):
        product = compress_hit(parse_hit(make_hit(url_compy=None)))
        assert product.url.startswith("https://www.falabella.com.pe/")

    def test_stores_from_store_list(self, document):
        assert compress_hit(parse_hit(make_hit(document))).stores == "Falabella, Ripley, Oechsle"

    def test_stores_from_per_store_prices(self):
        skus = [
            {"store": "Ripley", "bestprice": 1349.0, "url": "https://ripley.pe/x", "sku": "1"},
            {"store": "Falabella", "bestprice": 1299.0, "url": "https://falabella.pe/x", "sku": "2"},
        ]
        product = compress_hit(parse_hit(make_hit(skus=skus)))
        assert product.stores == "Falabella S/ 1,299.00, Ripley S/ 1,349.00"

    def test_stores_fall_back_to_top_store(self):
        product = compress_hit(parse_hit(make_hit(stores=[], topstore="Oechsle")))
        assert product.stores == "Oechsle"

    def test_price_verdict_attached(self, document):
        # 1299 vs minimum 1199 is about 8% above
        assert compress_hit(parse_hit(make_hit(document))).recommendation is Recommendation.GOOD_TIME_TO_BUY

    def test_verdict_unknown_without_metrics(self):
        doc = make_document()
        del doc["metrics"]
        assert compress_hit(parse_hit(make_hit(doc))).recommendation is Recommendation.UNKNOWN


class TestCompress:
    def test_header_reports_query_found_and_page(self, document):
        output = compress(_results([make_hit(document)], found=37))
        assert 'Query: "televisor led 55"' in output
        assert "Found: 37 (Page 1)" in output
        assert "Showing 1 of 37" in output

    def test_exhaustive_page_has_no_showing_note(self, document):
        output = compress(_results([make_hit(document)]))
        assert "Showing" not in output

    def test_one_row_per_hit(self):
        hits = [make_hit(title=f"Televisor {i}") for i in range(4)]
        rows = [line for line in compress(_results(hits)).splitlines() if line.startswith("| Televisor")]
        assert len(rows) == 4

    def test_smaller_than_raw_response(self):
        hits = [make_hit(title=f"Televisor {i}", repmodel=f"M{i}") for i in range(10)]
        raw = make_response(hits)
        output = compress(parse_search_response(raw, "televisor led 55"))
        assert len(output) < len(json.dumps(raw, ensure_ascii=False))

    def test_every_specified_feature_survives(self):
        doc = make_document(**{"f.Color": "Negro", "f.Peso": "14.2 kg", "f.Garantía": "NO ESPECIFICA"})
        output = compress(_results([make_hit(doc)]))
        for key, value in doc.items():
            if key.startswith("f.") and value != "NO ESPECIFICA":
                assert f"{key[2:]}: {value}" in output

    def test_drops_verbose_fields(self, document):
        output = compress(_results([make_hit(document)]))
        assert "Disfruta de imagenes" not in output
        assert "/2.jpg" not in output
        assert "578730123365711993" not in output

    def test_pipes_escaped(self):
        output = compress(_results([make_hit(title="Combo TV | Soundbar")]))
        assert "Combo TV \\| Soundbar" in output

    def test_empty_results(self):
        output = compress(_results([], q="refrigeradora marciana"))
        assert "Found: 0" in output
        assert 'Query: "refrigeradora marciana"' in output
        assert NO_RESULTS_NOTE in output
        assert "| Title |" not in output


class TestSparseHits:
    def test_bare_hit_smaller_than_raw_response(self):
        raw = {"found": 1, "page": 1, "hits": [{"document": {"title": "TV LG 55", "bestprice": 999}, "text_match": 1}]}
        output = compress(parse_search_response(raw, "tv"))
        assert len(output.encode("utf-8")) <= len(json.dumps(raw, separators=(",", ":")).encode("utf-8"))

    def test_sparse_table_smaller_than_raw_hits(self):
        hits = [
            {"document": {"title": "TV"}},
            {"document": {"title": "Licuadora Oster", "bestprice": 189.9}},
            {"document": {"title": "Laptop HP 15", "brand": "HP", "bestprice": 2499}},
            {"document": {"title": "Cocina Indurama", "stores": ["Oechsle"]}},
        ]
        results = parse_search_response({"found": 4, "page": 1, "hits": hits}, "x")
        assert len(table(results.hits)) <= len(json.dumps(hits, separators=(",", ":")))

    def test_empty_columns_left_out(self):
        output = compress(parse_search_response({"found": 1, "hits": [{"document": {"title": "TV", "bestprice": 999}}]}, "tv"))
        assert "| Title | Price |" in output
        for column in ("Brand", "Image", "Stores", "URL", "Price verdict"):
            assert column not in output

    def test_column_kept_when_any_row_has_it(self):
        hits = [{"document": {"title": "TV A"}}, {"document": {"title": "TV B", "brand": "LG"}}]
        output = compress(parse_search_response({"found": 2, "hits": hits}, "tv"))
        assert "| Title | Brand |" in output
        assert "| TV A |  |" in output

    def test_unknown_verdict_is_blank(self):
        doc = make_document()
        del doc["metrics"]
        output = compress(_results([make_hit(doc), make_hit(title="Televisor con historial")]))
        assert "Price verdict" in output
        assert "Not enough price history" not in output
        assert "Good time to buy" in output
