"""
Tests for the version module of the Counter SDK.
"""
import importlib
import re
from importlib import metadata as importlib_metadata
from unittest.mock import mock_open, patch

import pytest

import counter_sdk.version as vmod
from counter_sdk import __version__


def _not_installed(name):
    raise importlib_metadata.PackageNotFoundError(name)


@pytest.fixture(autouse=True)
def _reload_version():
    yield
    importlib.reload(vmod)


def test_version_format():
    """The version string follows semantic versioning"""
    assert re.match(r"^\d+\.\d+\.\d+$", __version__)


@patch("importlib.metadata.version")
def test_version_from_metadata(mock_metadata_version):
    mock_metadata_version.return_value = "2.3.4"
    importlib.reload(vmod)
    assert vmod.__version__ == "2.3.4"
    mock_metadata_version.assert_called_with("counter-ledger-sdk")


def test_version_from_pyproject(monkeypatch):
    monkeypatch.setattr(importlib_metadata, "version", _not_installed)
    monkeypatch.setattr("pathlib.Path.open", mock_open(read_data=b'[project]\nversion = "1.2.3"\n'))
    importlib.reload(vmod)
    assert vmod.__version__ == "1.2.3"


@pytest.mark.parametrize(
    "data",
    [
        b'[project]\nname = "counter-ledger-sdk"\n',
        b"[project\nversion = ",
    ],
)
def test_version_defaults_on_bad_pyproject(monkeypatch, data):
    monkeypatch.setattr(importlib_metadata, "version", _not_installed)
    monkeypatch.setattr("pathlib.Path.open", mock_open(read_data=data))
    importlib.reload(vmod)
    assert vmod.__version__ == "0.1.0"


def test_version_defaults_without_pyproject(monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("pyproject.toml")

    monkeypatch.setattr(importlib_metadata, "version", _not_installed)
    monkeypatch.setattr("pathlib.Path.open", missing)
    importlib.reload(vmod)
    assert vmod.__version__ == "0.1.0"
