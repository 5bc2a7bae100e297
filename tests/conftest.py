from pathlib import Path

import pytest

from tests.infrastructure import write, write_vars
from wclip.template import RenderContext


@pytest.fixture
def page_variables():
    """Переменные страницы в том виде, как их отдаёт экстрактор: ключи {{name}}."""
    return {
        "{{title}}": "Hello World",
        "{{author}}": "Jane Doe",
        "{{url}}": "https://example.com/post",
        "{{published}}": "2024-01-15",
        "{{highlights}}": [
            {"text": "First", "note": "n1"},
            {"text": "Second", "note": ""},
        ],
        "{{schema:@Article:headline}}": "Headline",
        "tags": ["python", "Templates"],
        "count": 3,
        "meta": {"og": {"title": "OG"}},
    }


@pytest.fixture
def render_context(page_variables):
    return RenderContext(variables=dict(page_variables), current_url="https://example.com/post")


@pytest.fixture
def template_file(tmp_path: Path):
    """Фабрика файлов шаблонов во временном каталоге."""
    def _make(text: str, name: str = "template.md") -> Path:
        return write(tmp_path / name, text)
    return _make


@pytest.fixture
def vars_file(tmp_path: Path):
    """Фабрика файлов переменных (.json сериализуется, иначе пишется как YAML-текст)."""
    def _make(data, name: str = "vars.yaml") -> Path:
        return write_vars(tmp_path / name, data)
    return _make
