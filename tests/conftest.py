import pytest

from kaleido.kaleido_codegen import CodeGenerator
from kaleido.kaleido_jit import JITEngine
from kaleido.kaleido_lexer import CharacterStream, Lexer
from kaleido.kaleido_parser import Parser


def make_parser(source: str) -> Parser:
    return Parser(Lexer(CharacterStream(source)))


@pytest.fixture  # type: ignore[misc]
def codegen() -> CodeGenerator:
    return CodeGenerator()


@pytest.fixture  # type: ignore[misc]
def jit() -> JITEngine:
    return JITEngine()
