"""翻译器包"""
from translate_worker.translators.base import Translator
from translate_worker.translators.registry import BACKENDS, BackendSpec, create_translator, get_backend

__all__ = [
    "Translator",
    "BACKENDS",
    "BackendSpec",
    "create_translator",
    "get_backend",
]
