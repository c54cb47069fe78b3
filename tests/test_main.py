import json
import logging

import pytest
import yaml

import main
from sitecrawl.crawler.scheduler import CrawlScheduler
from sitecrawl.storage.checkpoint import CheckpointStore
from conftest import FakeFetcher, url


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        'crawler': {
            'checkpoint_dir': str(tmp_path / "checkpoints"),
            'rate_limit': 0,
            'use_sitemap': False,
        },
        'logging': {'file': str(tmp_path / "logs" / "crawler.log")},
    }))
    return path


@pytest.fixture
def fake_scheduler(monkeypatch):
    fetcher = FakeFetcher({url("/"): [url("/a")], url("/a"): []})

    def factory(config):
        return CrawlScheduler(config, fetcher=fetcher)

    monkeypatch.setattr(main, "CrawlScheduler", factory)
    return fetcher


def test_parser_flags():
    args = main.build_parser().parse_args(
        ["http://example.com/", "-d", "example.com", "-w", "5", "-D", "3", "-r", "1.5",
         "-p", "gentle", "-o", "/tmp/out", "--no-sitemap", "--debug"]
    )
    assert args.url == "http://example.com/"
    assert args.workers == 5
    assert args.depth == 3
    assert args.rate == 1.5
    assert args.profile == "gentle"
    assert args.sitemap is False
    assert args.debug


def test_sitemap_flag_defaults_to_config():
    assert main.build_parser().parse_args(["http://example.com/"]).sitemap is None


def test_successful_crawl_writes_results_and_clears_checkpoint(tmp_path, config_file,
                                                               fake_scheduler, capsys):
    out_dir = tmp_path / "out"
    code = main.main([url("/"), "--config", str(config_file), "-o", str(out_dir)])

    assert code == main.EXIT_OK
    data = json.loads((out_dir / "results.json").read_text())
    assert {r['url'] for r in data['results']} == {url("/"), url("/a")}
    assert data['stats']['pages_crawled'] == 2
    assert (out_dir / "index.html").exists()
    assert not CheckpointStore("example.com", tmp_path / "checkpoints").exists()
    assert "CRAWLING STATISTICS" in capsys.readouterr().out


def test_config_error_exits_with_failure(tmp_path, capsys):
    code = main.main(["--config", str(tmp_path / "missing.yaml")])

    assert code == main.EXIT_FAILURE
    assert "Configuration error" in capsys.readouterr().err


def test_missing_url_exits_with_failure():
    assert main.main([]) == main.EXIT_FAILURE


def test_output_error_keeps_checkpoint(tmp_path, config_file, fake_scheduler, monkeypatch):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    saved = []
    monkeypatch.setattr(CrawlScheduler, "clear_checkpoint", lambda self: saved.append(True))

    code = main.main([url("/"), "--config", str(config_file), "-o", str(blocker)])

    assert code == main.EXIT_FAILURE
    assert saved == []


def test_interrupted_crawl_exits_130(tmp_path, config_file, monkeypatch):
    def factory(config):
        scheduler = CrawlScheduler(config, fetcher=FakeFetcher({url("/"): []}))
        scheduler.stop()
        return scheduler

    monkeypatch.setattr(main, "CrawlScheduler", factory)
    code = main.main([url("/"), "--config", str(config_file), "-o", str(tmp_path / "out")])

    assert code == main.EXIT_INTERRUPTED
    assert CheckpointStore("example.com", tmp_path / "checkpoints").exists()
    assert (tmp_path / "out" / "results.json").exists()
