import threading

import pytest

from audiowavelib import log


@pytest.fixture(autouse=True)
def _fresh_env_lookup():
    log.reset_enabled()
    yield
    log.reset_enabled()


class _Loader:
    def load(self):
        log.dbg("loading")


def _trace_from_module():
    log.dbg("tick")


def test_dbg_is_silent_by_default(monkeypatch, capsys):
    monkeypatch.delenv("AW_DEBUG", raising=False)

    log.dbg("hidden")

    assert capsys.readouterr().err == ""


def test_dbg_names_thread_and_calling_class(monkeypatch, capsys):
    monkeypatch.setenv("AW_DEBUG", "True")

    _Loader().load()

    err = capsys.readouterr().err
    assert err.startswith("[")
    assert err.endswith(" MainThread _Loader] loading\n")


def test_dbg_reports_worker_thread_and_module(monkeypatch, capsys):
    monkeypatch.setenv("AW_DEBUG", "1")

    t = threading.Thread(target=_trace_from_module, name="audiowave-tick")
    t.start()
    t.join()

    assert capsys.readouterr().err.endswith(" audiowave-tick test_log] tick\n")


def test_reset_enabled_rereads_environment(monkeypatch, capsys):
    monkeypatch.setenv("AW_DEBUG", "0")
    log.dbg("first")
    monkeypatch.setenv("AW_DEBUG", "1")
    log.dbg("second")

    log.reset_enabled()
    log.dbg("third")

    err = capsys.readouterr().err
    assert err.count("\n") == 1
    assert err.endswith("] third\n")
