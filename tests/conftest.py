import json
import shutil
from pathlib import Path
from typing import Any

import pytest

GOOD_INSTALL = """#!/bin/bash
set -e

if [ "$(id -u)" -ne 0 ]; then
    echo 'Script must be run as root.'
    exit 1
fi

if command -v hello >/dev/null 2>&1; then
    echo "hello is already installed"
    exit 0
fi

GREETING=${GREETING:-"Hello"}
cat > /usr/local/bin/hello <<EOF
#!/bin/bash
echo "${GREETING}, world"
EOF
chmod +x /usr/local/bin/hello
"""

GOOD_README = """# Hello World

Prints a greeting.

## Example Usage

```json
"features": {"ghcr.io/example/features/hello-world:1": {}}
```

## Options

| Option | Description | Default |
| greeting | Greeting to print | Hello |
"""

GOOD_TEST = """#!/bin/bash
set -e
source dev-container-features-test-lib
check "hello prints greeting" bash -c "hello | grep 'Hello, world'"
reportResults
"""

_DEFAULT = object()

requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash is not installed")


def default_manifest(name: str) -> dict[str, Any]:
    return {
        "id": name,
        "version": "1.0.0",
        "name": name.replace("-", " ").title(),
        "description": f"Installs the {name} command",
        "options": {
            "greeting": {
                "type": "string",
                "default": "Hello",
                "description": "Greeting to print",
            }
        },
        "installsAfter": ["ghcr.io/devcontainers/features/common-utils"],
    }


def write_feature(
    workspace: Path,
    name: str,
    *,
    manifest: Any = _DEFAULT,
    install: str | None = GOOD_INSTALL,
    executable: bool = True,
    readme: str | None = GOOD_README,
    test_script: str | None = GOOD_TEST,
    scenarios: str | None = '{"default": {"image": "ubuntu:22.04", "features": {}}}',
    with_tests: bool = True,
) -> Path:
    """
    Lay out ``<workspace>/src/<name>`` and ``<workspace>/test/<name>``.

    ``manifest`` may be a dict (dumped as JSON), a raw string, or None to omit
    the file.
    """

    feature_dir = workspace / "src" / name
    feature_dir.mkdir(parents=True, exist_ok=True)

    payload = default_manifest(name) if manifest is _DEFAULT else manifest
    if payload is not None:
        text = payload if isinstance(payload, str) else json.dumps(payload, indent=2)
        (feature_dir / "devcontainer-feature.json").write_text(text, encoding="utf-8")

    if install is not None:
        install_path = feature_dir / "install.sh"
        install_path.write_text(install, encoding="utf-8")
        install_path.chmod(0o755 if executable else 0o644)

    if readme is not None:
        (feature_dir / "README.md").write_text(readme, encoding="utf-8")

    if with_tests:
        test_dir = workspace / "test" / name
        test_dir.mkdir(parents=True, exist_ok=True)
        if test_script is not None:
            (test_dir / "test.sh").write_text(test_script, encoding="utf-8")
        if scenarios is not None:
            (test_dir / "scenarios.json").write_text(scenarios, encoding="utf-8")

    return feature_dir


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    (root / "src").mkdir(parents=True)
    (root / "test").mkdir()
    return root
