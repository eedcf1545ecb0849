"""
Pytest configuration and shared fixtures for Code Organizer tests.
"""

import os
import sys
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Generator

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from models import FileItem, SnippetItem


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def inbox_dir(temp_dir: Path) -> Path:
    """Create a temporary directory for incoming screenshots."""
    inbox = temp_dir / "inbox"
    inbox.mkdir()
    return inbox


@pytest.fixture
def library_dir(temp_dir: Path) -> Path:
    """Create a temporary library directory."""
    library = temp_dir / "code_library"
    library.mkdir()
    return library


@pytest.fixture
def sample_python_code() -> str:
    """Python snippet as it might come out of OCR."""
    return """
import requests

def fetch_user_profile(user_id):
    response = requests.get(f"/api/users/{user_id}")
    if response.status_code == 200:
        return response.json()
    print("Request failed")
    return None
"""


@pytest.fixture
def sample_javascript_code() -> str:
    """React component snippet."""
    return """
import React, { useState } from 'react';

export const LoginButton = (props) => {
  const [loading, setLoading] = useState(false);
  console.log('rendering button');
  return <button onClick={props.onClick}>Login</button>;
};
"""


@pytest.fixture
def sample_sql_code() -> str:
    """SQL query snippet."""
    return "SELECT id, email FROM users WHERE created_at > NOW() - INTERVAL '7 days';"


@pytest.fixture
def make_file():
    """Factory for FileItems with sensible defaults."""
    def _make(item_id: str, title: str = "", description: str = "", created_at=None, **kwargs) -> FileItem:
        return FileItem(
            id=item_id,
            owner_id=kwargs.pop("owner_id", "owner-1"),
            title=title or item_id,
            description=description,
            created_at=created_at or datetime(2024, 3, 4, 10, 0),
            **kwargs,
        )
    return _make


@pytest.fixture
def make_snippet():
    """Factory for SnippetItems with sensible defaults."""
    def _make(item_id: str, file_id: str, text: str, created_at=None, **kwargs) -> SnippetItem:
        return SnippetItem(
            id=item_id,
            file_id=file_id,
            owner_id=kwargs.pop("owner_id", "owner-1"),
            extracted_text=text,
            created_at=created_at or datetime(2024, 3, 4, 10, 0),
            **kwargs,
        )
    return _make


@pytest.fixture
def duplicate_files(make_file) -> list[FileItem]:
    """Two files with identical content, the classic merge case."""
    description = "React Native button using View and TouchableOpacity"
    return [
        make_file("f1", "javascript-ui-components", description),
        make_file("f2", "javascript-ui-components", description, created_at=datetime(2024, 3, 4, 10, 5)),
    ]


@pytest.fixture
def triplicate_files(make_file, duplicate_files) -> list[FileItem]:
    """Three copies of the same file."""
    third = make_file("f3", duplicate_files[0].title, duplicate_files[0].description,
                      created_at=datetime(2024, 3, 4, 10, 10))
    return [*duplicate_files, third]


@pytest.fixture
def spread_out_items(make_file) -> list[FileItem]:
    """Unrelated files created weeks apart."""
    start = datetime(2024, 1, 1, 9, 0)
    return [
        make_file("a", "shopping list", "milk eggs bread", created_at=start),
        make_file("b", "holiday notes", "beach sunscreen towel", created_at=start + timedelta(days=20)),
        make_file("c", "garden plan", "tomatoes basil compost", created_at=start + timedelta(days=45)),
    ]


@pytest.fixture
def sample_image_path(inbox_dir: Path) -> Path:
    """Create a minimal test image file."""
    from PIL import Image

    img_path = inbox_dir / "screenshot.png"
    # Create a simple 100x100 white image
    img = Image.new('RGB', (100, 100), color='white')
    img.save(img_path)
    return img_path


@pytest.fixture(autouse=True)
def reset_env_vars(temp_dir: Path):
    """Reset environment variables and keep settings out of the real config dir."""
    import settings

    original_env = os.environ.copy()
    os.environ["XDG_CONFIG_HOME"] = str(temp_dir / "config")
    os.environ.pop("CODE_LIBRARY_PATH", None)
    settings._settings = None
    yield
    settings._settings = None
    os.environ.clear()
    os.environ.update(original_env)
