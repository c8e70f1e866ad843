"""
Shared fixtures for replication engine tests
"""
import pytest

from replication_engine.config import ProviderSettings, reset_config
from replication_engine.providers import GenerationBackend


class StubBackend(GenerationBackend):
    """Backend returning a canned result (or raising it) and recording prompts"""

    provider_type = "local"
    display_name = "Stub"

    def __init__(self, result):
        super().__init__(ProviderSettings(), model="stub-model")
        self.result = result
        self.prompts = []
        self.configs = []

    def generate(self, prompt, config):
        self.prompts.append(prompt)
        self.configs.append(config)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture(autouse=True)
def clean_config():
    """Never leak a global configuration between tests"""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def make_backend():
    return StubBackend


@pytest.fixture
def sample_codebase(tmp_path):
    """Small project tree with files that are kept and files that are skipped"""
    root = tmp_path / "project"
    (root / "src" / "components").mkdir(parents=True)
    (root / "node_modules" / "lib").mkdir(parents=True)

    (root / "index.js").write_text("console.log(1)\n", encoding="utf-8")
    (root / "package.json").write_text('{"name": "demo"}\n', encoding="utf-8")
    (root / "src" / "util.js").write_text("export const add = (a, b) => a + b;\n", encoding="utf-8")
    (root / "src" / "components" / "App.jsx").write_text("export default () => null;\n", encoding="utf-8")
    (root / "node_modules" / "lib" / "index.js").write_text("module.exports = 1;\n", encoding="utf-8")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n")
    (root / "README.md").write_text("# demo\n", encoding="utf-8")
    (root / ".env").write_text("SECRET=1\n", encoding="utf-8")
    (root / "package-lock.json").write_text("{}\n", encoding="utf-8")
    return root
