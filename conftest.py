"""
Shared test fixtures for the Namada REST Gateway
"""

import pytest

from namada_rpc_client import ChainQueryClient


class FakeChainClient(ChainQueryClient):
    """
    In-memory chain client.

    Each keyword names a client method; its value is returned, raised when it
    is an exception, or called with the method arguments when callable.
    """

    def __init__(self, **responses):
        self.responses = responses
        self.calls = []

    def _answer(self, method, *args):
        self.calls.append((method, args))
        value = self.responses[method]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(*args)
        return value


def _fake_method(name):
    def method(self, *args):
        return self._answer(name, *args)
    method.__name__ = name
    return method


for _name in [n for n in vars(ChainQueryClient) if not n.startswith("_")]:
    setattr(FakeChainClient, _name, _fake_method(_name))


@pytest.fixture
def make_client():
    """Factory for fake chain clients"""
    return FakeChainClient
