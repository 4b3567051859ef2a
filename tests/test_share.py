import pytest

from rpcplug import share
from rpcplug.share import (
    CODECS,
    DownloadFileArgs,
    FileTransferArgs,
    StreamServiceArgs,
    StreamServiceReply,
    register_codec,
)


class MockCodec:
    def encode(self, value):
        return b""

    def decode(self, data, value):
        return None


@pytest.fixture
def clean_codecs():
    saved = dict(CODECS)
    yield
    CODECS.clear()
    CODECS.update(saved)


def test_register_codec(clean_codecs):
    before = len(share.CODECS)
    codec = MockCodec()
    register_codec(127, codec)
    assert len(share.CODECS) == before + 1
    assert share.CODECS[127] is codec


def test_register_codec_replaces(clean_codecs):
    register_codec(127, MockCodec())
    before = len(share.CODECS)
    replacement = MockCodec()
    register_codec(127, replacement)
    assert len(share.CODECS) == before
    assert share.CODECS[127] is replacement


def test_transfer_args_have_independent_meta():
    a = FileTransferArgs(file_name="f.txt", file_size=10)
    b = FileTransferArgs()
    a.meta["k"] = "v"
    assert b.meta == {}
    assert a == FileTransferArgs(file_name="f.txt", file_size=10, meta={"k": "v"})


def test_other_messages_defaults():
    assert DownloadFileArgs(file_name="x").meta == {}
    assert StreamServiceArgs(meta={"a": "b"}).meta == {"a": "b"}
    reply = StreamServiceReply(token=b"token", addr="tcp@127.0.0.1:8972")
    assert reply.token == b"token"