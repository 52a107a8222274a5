"""Shared fakes for the Compy agent tests: catalog documents, search client, scripted model."""

import copy
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from compy_agent.models import SearchQuery, SearchResults
from compy_agent.search import AbstractSearchClient, parse_search_response


def make_document(**overrides: Any) -> Dict[str, Any]:
    """A catalog document shaped like the products collection, with the usual noise."""
    doc = {
        "id": "tv-lg-55uq8050",
        "active": True,
        "key": "lg-55uq8050psb",
        "title": "Televisor LG LED 55\" UHD 4K Smart TV 55UQ8050PSB",
        "brand": "LG",
        "repmodel": "55UQ8050PSB",
        "bestprice": 1299.0,
        "desc": "Disfruta de imagenes nitidas con resolucion 4K y procesador a5 Gen 5 con AI. " * 3,
        "tags": ["televisores", "smart tv", "4k", "uhd", "led", "oferta"],
        "categories": {"level1": "Tecnologia", "level2": "Televisores", "level3": "Smart TV"},
        "f.Tamaño de pantalla": "55\"",
        "f.Resolución": "4K UHD",
        "f.Sistema operativo": "webOS",
        "f.Bluetooth": "NO ESPECIFICA",
        "f.Puertos HDMI": "3",
        "images": [
            "https://img.compy.pe/lg-55uq8050/1.jpg",
            "https://img.compy.pe/lg-55uq8050/2.jpg",
            "https://img.compy.pe/lg-55uq8050/3.jpg",
            "https://img.compy.pe/lg-55uq8050/4.jpg",
        ],
        "stores": ["Falabella", "Ripley", "Oechsle"],
        "topstore": "Falabella",
        "url": "https://www.falabella.com.pe/falabella-pe/product/123456/televisor-lg-55",
        "url_compy": "https://compy.pe/p/lg-55uq8050psb",
        "url_search": "https://compy.pe/search?q=lg+55uq8050psb",
        "numtiendas": 3,
        "top": 1,
        "percent_offer": 24.5,
        "metrics": {
            "percent_offer": 24.5,
            "median_hist": 1599.0,
            "prev_price": 1499.0,
            "amt_change": -200.0,
            "amt_change_text": "-S/ 200.00",
            "percent_change": -13.3,
            "price_minimum": 1199.0,
            "isminimum": False,
            "percent_save": 13.3,
        },
    }
    doc.update(overrides)
    return doc


def make_hit(document: Optional[Dict[str, Any]] = None, **overrides: Any) -> Dict[str, Any]:
    doc = document or make_document(**overrides)
    return {
        "document": doc,
        "highlights": [
            {"field": "title", "matched_tokens": ["Televisor", "LED", "55"], "snippet": "<mark>Televisor</mark> LG"},
        ],
        "text_match": 578730123365711993,
        "text_match_info": {"best_field_score": "1108091339008", "fields_matched": 2, "tokens_matched": 3},
    }


def make_response(hits: List[Dict[str, Any]], q: str = "televisor led 55", found: Optional[int] = None) -> Dict[str, Any]:
    return {
        "facet_counts": [],
        "found": len(hits) if found is None else found,
        "hits": hits,
        "out_of": 48210,
        "page": 1,
        "request_params": {"collection_name": "products2", "per_page": 10, "q": q},
        "search_cutoff": False,
        "search_time_ms": 7,
    }


class FakeSearchClient(AbstractSearchClient):
    """Returns queued responses (or raises queued errors) and records every call."""

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    async def search(self, query: SearchQuery, filter_by: str = "") -> SearchResults:
        self.calls.append({"query": query, "filter_by": filter_by})
        response = self.responses.pop(0) if self.responses else make_response([])
        if isinstance(response, Exception):
            raise response
        return parse_search_response(copy.deepcopy(response), query.query_text)


def text_chunk(text: str) -> SimpleNamespace:
    delta = SimpleNamespace(content=text, tool_calls=None)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def tool_call_chunks(call_id: str, args: Dict[str, Any], name: str = "searchProducts", index: int = 0) -> List[SimpleNamespace]:
    """A tool call split across chunks the way the streaming API sends it."""
    raw = json.dumps(args)
    half = len(raw) // 2
    first = SimpleNamespace(index=index, id=call_id, function=SimpleNamespace(name=name, arguments=raw[:half]))
    second = SimpleNamespace(index=index, id=None, function=SimpleNamespace(name=None, arguments=raw[half:]))
    return [
        SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=[first]))]),
        SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=[second]))]),
    ]


class FakeStream:
    def __init__(self, chunks: List[Any]) -> None:
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        item = self._chunks.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class ScriptedLLM:
    """Stands in for AsyncOpenAI; each create() call plays the next scripted turn."""

    def __init__(self, turns: List[List[Any]]) -> None:
        self.turns = list(turns)
        self.calls: List[Dict[str, Any]] = []
        self.streams: List[FakeStream] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs: Any) -> FakeStream:
        # Snapshot: the agent keeps appending to the same list.
        self.calls.append({**kwargs, "messages": list(kwargs["messages"])})
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        stream = FakeStream(turn)
        self.streams.append(stream)
        return stream


@pytest.fixture
def document():
    return make_document()


@pytest.fixture
def search_client():
    return FakeSearchClient()
