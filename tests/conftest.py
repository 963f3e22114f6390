"""Shared fixtures for reqtask tests."""

import os

import pytest
import requests
from click.testing import CliRunner


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def tmp_project(tmp_path):
    """Create a temporary project directory and cd into it."""
    original = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(original)


def make_response(
    status_code=200,
    content=b"ok",
    headers=None,
    reason="OK",
):
    """Factory for requests.Response objects returned by a mocked Session.send."""
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = content
    resp.headers.update(headers or {})
    resp.reason = reason
    return resp


@pytest.fixture
def response_factory():
    return make_response
