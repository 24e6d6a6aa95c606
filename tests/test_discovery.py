import json

import pytest
import requests

from discovery import ImageResult, ImageSearchService, WebSearchClient, build_image_query
from discovery.cache import ProviderCache
from discovery.providers import BingImageProvider, GoogleImageProvider, WhiskyExchangeProvider
from discovery.providers.base import ImageSearchProvider
from discovery.proxy import fetch_image, validate_image_url
from discovery.service import FALLBACK_IMAGES, fallback_images
from discovery.web_search import detect_spirit_type, is_valid_image_url


TWE_HTML = """
<div class="product-grid">
  <div class="product-card">
    <div class="product-card__image"><img src="/media/eagle-rare.jpg"></div>
    <p class="product-card__name">Eagle Rare 10 Year Old</p>
  </div>
  <div class="product-card">
    <div class="product-card__image"><img data-src="https://img.example.com/blanton.png"></div>
    <p class="product-card__name">Blanton's Original</p>
  </div>
  <div class="product-card"><p class="product-card__name">No image</p></div>
</div>
"""


class StaticProvider(ImageSearchProvider):
    def __init__(self, name, urls):
        super().__init__(fetch=lambda **kwargs: "unused")
        self.name = name
        self.urls = urls
        self.calls = 0

    def request(self, query):
        return {"url": "http://example.invalid"}

    def parse(self, html, query):
        self.calls += 1
        return [ImageResult(url=u, alt=query, source=self.name) for u in self.urls]


# --- Query building ---

def test_build_image_query():
    assert build_image_query("Stagg Jr", "Buffalo Trace", "Bourbon", "2023") == \
        "Buffalo Trace Stagg Jr bourbon whiskey 2023 bottle official"
    assert build_image_query("Blanco", None, "Other") == "Blanco bottle official"
    assert build_image_query(None, "Fortaleza", "Tequila") == "Fortaleza Tequila bottle official"


# --- Providers ---

def test_whisky_exchange_parse():
    images = WhiskyExchangeProvider().parse(TWE_HTML, "eagle rare")
    assert [i.url for i in images] == [
        "https://www.thewhiskyexchange.com/media/eagle-rare.jpg",
        "https://img.example.com/blanton.png",
    ]
    assert images[0].alt == "Eagle Rare 10 Year Old"


def test_whisky_exchange_drops_marketing_words():
    request = WhiskyExchangeProvider().request("Eagle Rare bottle official")
    assert request["params"] == {"q": "Eagle Rare"}


def test_bing_parse_reads_tile_metadata():
    meta = json.dumps({"murl": "https://shop.example.com/weller-bottle.jpg", "t": "Weller 12"})
    blocked = json.dumps({"murl": "https://i.redd.it/weller.jpg", "t": "reddit"})
    html = f"<a class='iusc' m='{meta}'></a><a class='iusc' m='{blocked}'></a><a class='iusc' m='not json'></a>"
    images = BingImageProvider().parse(html, "weller")
    assert [(i.url, i.alt) for i in images] == [("https://shop.example.com/weller-bottle.jpg", "Weller 12")]


def test_bing_parse_falls_back_to_inline_scripts():
    html = '<script>var x = {"murl":"https:\\/\\/cdn.example.com\\/rye.png"};</script>'
    images = BingImageProvider().parse(html, "rye")
    assert [i.url for i in images] == ["https://cdn.example.com/rye.png"]


def test_google_parse_skips_google_hosts():
    html = """
    <img src="https://www.google.com/logo.png">
    <img src="https://encrypted-tbn0.gstatic.com/thumb.jpg">
    <img src="https://cdn.example.com/booker.jpg">
    <script>["https://store.example.com/bookers-full.webp",500,300]</script>
    """
    urls = [i.url for i in GoogleImageProvider().parse(html, "booker's")]
    assert urls == ["https://cdn.example.com/booker.jpg", "https://store.example.com/bookers-full.webp"]


def test_provider_search_never_raises():
    def broken_fetch(**kwargs):
        raise RuntimeError("boom")

    assert BingImageProvider(fetch=broken_fetch).search("anything") == []
    assert BingImageProvider(fetch=lambda **kwargs: None).search("anything") == []


# --- Service ---

def test_service_requires_name_or_brand():
    with pytest.raises(ValueError):
        ImageSearchService(providers=[]).search(name="  ", brand="")


def test_service_stops_once_enough_results():
    first = StaticProvider("first", [f"https://a.example.com/{i}.jpg" for i in range(3)])
    second = StaticProvider("second", ["https://a.example.com/0.jpg", "https://b.example.com/x.jpg"])
    third = StaticProvider("third", ["https://c.example.com/y.jpg"])

    result = ImageSearchService(providers=[first, second, third], min_results=4).search(name="Weller")
    urls = [i["url"] for i in result["images"]]
    assert len(urls) == len(set(urls)) == 4
    assert third.calls == 0


def test_service_uses_cache(tmp_path):
    cache = ProviderCache(tmp_path / "cache.json")
    provider = StaticProvider("p", ["https://a.example.com/1.jpg"])
    service = ImageSearchService(providers=[provider], cache=cache)

    service.search(name="Weller")
    service.search(name="Weller")
    assert provider.calls == 1

    reloaded = ProviderCache(tmp_path / "cache.json")
    assert reloaded.get_images("  WELLER bottle   official ")[0]["url"] == "https://a.example.com/1.jpg"


def test_service_falls_back_to_stock_images():
    result = ImageSearchService(providers=[StaticProvider("empty", [])]).search(name="Sazerac", spirit_type="Rye")
    assert result["images"]
    assert {i["source"] for i in result["images"]} == {"Fallback"}


@pytest.mark.parametrize("query,spirit_type,expected", [
    ("anything", "Bourbon", "bourbon"),
    ("sazerac rye", "", "rye"),
    ("lagavulin whisky", "", "scotch"),
    ("mystery", "", "generic"),
])
def test_fallback_images_pick_by_type(query, spirit_type, expected):
    urls = [i.url for i in fallback_images(query, spirit_type)]
    assert urls == [url for url, _ in FALLBACK_IMAGES[expected]]


def test_cache_survives_corrupt_file(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json")
    cache = ProviderCache(path)
    assert cache.get_images("x") is None
    cache.set_images("x", [{"url": "u"}])
    cache.clear()
    assert cache.get_images("x") is None


# --- Web search ---

def test_web_search_without_key_uses_fallback():
    client = WebSearchClient(None)
    assert not client.is_available
    result = client.search("Buffalo Trace Bourbon", release_year="2022")
    info = result["relatedInfo"]
    assert result["query"] == "Buffalo Trace Bourbon"
    assert len(result["results"]) == 3
    assert info["distillery"]["location"] == "Kentucky, USA"
    assert info["product"]["releaseYear"] == "2022"
    assert info["product"]["webImageUrl"].startswith("https://")


def test_web_search_fallback_scales_price_with_age():
    result = WebSearchClient().search("Old Scout 12 year bourbon")
    assert result["relatedInfo"]["product"]["price"] == {"low": 35, "avg": 66, "high": 108}


def test_web_search_empty_query():
    with pytest.raises(ValueError):
        WebSearchClient().search("   ")


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status}")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.params = []

    def get(self, url, params=None, timeout=None):
        self.params.append(params)
        return self.responses.pop(0)


def test_web_search_with_serpapi():
    session = FakeSession([
        FakeResponse({
            "organic_results": [{"title": "Weller", "snippet": "Wheated", "link": "https://www.example.com/weller"}],
            "knowledge_graph": {"title": "Buffalo Trace Distillery", "founded": "1773"},
            "shopping_results": [{"price": "$30.00"}, {"price": "$50.00"}],
        }),
        FakeResponse({"images_results": [
            {"original": "https://cdn.example.com/wide.jpg", "original_height": 100, "original_width": 200},
            {"original": "https://cdn.example.com/tall.jpg", "original_height": 300, "original_width": 100},
        ]}),
    ])
    result = WebSearchClient("key", session=session).search("Weller Special Reserve")

    assert session.params[0]["api_key"] == "key"
    assert result["results"][0]["source"] == "www.example.com"
    info = result["relatedInfo"]
    assert info["distillery"]["name"] == "Buffalo Trace Distillery"
    assert info["distillery"]["founded"] == "1773"
    assert info["product"]["price"] == {"low": 30.0, "avg": 40, "high": 50.0}
    assert info["product"]["webImageUrl"] == "https://cdn.example.com/tall.jpg"


def test_web_search_serpapi_failure_falls_back():
    session = FakeSession([FakeResponse({}, status=500)])
    result = WebSearchClient("key", session=session).search("Four Roses Single Barrel")
    assert result["results"][0]["title"].endswith("Official Site - Product Information")


def test_detect_spirit_type_and_image_urls():
    assert detect_spirit_type("Laphroaig single malt") == "scotch"
    assert detect_spirit_type("unknown") == "bourbon"
    assert is_valid_image_url("https://x.example.com/a.png?w=1")
    assert is_valid_image_url("data:image/png;base64,AAAA")
    assert not is_valid_image_url("undefined")
    assert not is_valid_image_url("ftp://x.example.com/a.png")


# --- Image proxy ---

@pytest.mark.parametrize("url", [None, "", "ftp://example.com/a.png", "/relative.png", "http://"])
def test_proxy_rejects_bad_urls(url):
    with pytest.raises(ValueError):
        validate_image_url(url)


class StreamingResponse:
    def __init__(self, status=200, content_type="image/png", chunks=(b"abc",)):
        self.status_code = status
        self.headers = {"Content-Type": content_type}
        self.chunks = chunks

    def iter_content(self, chunk_size=None):
        return iter(self.chunks)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.mark.parametrize("response,expected", [
    (StreamingResponse(), (b"abc", "image/png")),
    (StreamingResponse(content_type="image/jpeg; charset=binary"), (b"abc", "image/jpeg")),
    (StreamingResponse(status=404), None),
    (StreamingResponse(content_type="text/html"), None),
    (StreamingResponse(chunks=(b"x" * 6, b"y" * 6)), None),
])
def test_fetch_image(monkeypatch, response, expected):
    monkeypatch.setattr("discovery.proxy._session.get", lambda *args, **kwargs: response)
    assert fetch_image("https://img.example.com/a.png", max_bytes=10) == expected


def test_fetch_image_network_error(monkeypatch):
    def fail(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr("discovery.proxy._session.get", fail)
    assert fetch_image("https://img.example.com/a.png") is None
