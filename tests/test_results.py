import json
from datetime import datetime, timedelta, timezone

import pytest

from sitecrawl.crawler.fetcher import PageResponse, PageResult
from sitecrawl.crawler.stats import CrawlStats
from sitecrawl.exceptions import OutputError
from sitecrawl.storage.results import (
    CrawlResults, ResultStore, render_html_report, write_html_report, write_results
)


START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_result_store_keeps_one_result_per_url():
    store = ResultStore()
    assert store.append(PageResult.failed("http://example.com/a", 1, "HTTP 500"))
    assert not store.append(PageResult(url="http://example.com/a", depth=1, status_code=200))
    assert store.extend([PageResult(url="http://example.com/b", depth=1)]) == 1

    assert len(store) == 2
    assert "http://example.com/a" in store
    assert store.snapshot()[0].error == "HTTP 500"


def test_page_result_from_response():
    response = PageResponse(status_code=200, content_type="text/html", title="Hi",
                            links=["http://example.com/x"])
    result = PageResult.from_response("http://example.com/", 0, response)
    assert result.ok
    assert result.links == ("http://example.com/x",)
    assert result.error is None


def test_page_result_dict_keys():
    ok = PageResult(url="http://example.com/", depth=0, status_code=200, crawled_at=START)
    data = ok.to_dict()
    assert list(data) == ['url', 'title', 'status_code', 'depth', 'links',
                          'crawled_at', 'content_type']
    assert data['crawled_at'] == "2024-05-01T12:00:00+00:00"

    failed = PageResult.failed("http://example.com/x", 1, "Request timeout", crawled_at=START)
    assert failed.to_dict()['error'] == "Request timeout"
    assert not failed.ok


def test_write_results_document(tmp_path):
    stats = CrawlStats(start_time=START, pages_found=2, pages_crawled=1, errors=1)
    results = [
        PageResult(url="http://example.com/", depth=0, status_code=200, crawled_at=START),
        PageResult.failed("http://example.com/a", 1, "HTTP 404", crawled_at=START),
    ]
    crawl = CrawlResults(stats=stats, results=results, end_time=START + timedelta(seconds=90))

    output_file = write_results(crawl, tmp_path / "nested" / "out")

    assert output_file == tmp_path / "nested" / "out" / "results.json"
    data = json.loads(output_file.read_text())
    assert data['stats']['pages_crawled'] == 1
    assert data['stats']['duration'] == 90
    assert data['stats']['end_time'] == "2024-05-01T12:01:30+00:00"
    assert [r['url'] for r in data['results']] == ["http://example.com/", "http://example.com/a"]


def test_write_results_failure_raises_output_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    crawl = CrawlResults(stats=CrawlStats(start_time=START), end_time=START)
    with pytest.raises(OutputError):
        write_results(crawl, blocker)


def test_html_report_lists_pages_and_escapes(tmp_path):
    stats = CrawlStats(start_time=START, pages_found=2, pages_crawled=1, errors=1)
    results = [
        PageResult(url="http://example.com/", depth=0, status_code=200,
                   title="Fish & <Chips>", links=("http://example.com/a",), crawled_at=START),
        PageResult.failed("http://example.com/a", 1, "HTTP 404", crawled_at=START),
    ]
    crawl = CrawlResults(stats=stats, results=results, end_time=START + timedelta(seconds=90))

    html = render_html_report(crawl, title="http://example.com/")
    assert "Fish &amp; &lt;Chips&gt;" in html
    assert '<a href="http://example.com/a">' in html
    assert '<tr class="error">' in html
    assert "<li>pages_crawled: 1</li>" in html

    output_file = write_html_report(crawl, tmp_path / "out")
    assert output_file == tmp_path / "out" / "index.html"
    assert output_file.read_text().startswith("<!DOCTYPE html>")


def test_html_report_failure_raises_output_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    crawl = CrawlResults(stats=CrawlStats(start_time=START))

    with pytest.raises(OutputError):
        write_html_report(crawl, blocker)
