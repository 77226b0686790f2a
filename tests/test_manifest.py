"""
Tests for package.json patching.
"""

import json

import pytest

from bump_bot.exceptions import ManifestError
from bump_bot.manifest import update_package_json_dependency


def test_caret_range_is_preserved():
    content = '{"dependencies": {"lodash": "^4.17.21"}}'

    updated = update_package_json_dependency(content, "lodash", "4.18.0")

    assert json.loads(updated)["dependencies"]["lodash"] == "^4.18.0"


def test_tilde_range_is_preserved():
    content = '{"dependencies": {"lodash": "~4.17.21"}}'

    updated = update_package_json_dependency(content, "lodash", "4.18.0")

    assert json.loads(updated)["dependencies"]["lodash"] == "~4.18.0"


def test_exact_pin_stays_exact():
    content = '{"dependencies": {"lodash": "4.17.21"}}'

    updated = update_package_json_dependency(content, "lodash", "^4.18.0")

    assert json.loads(updated)["dependencies"]["lodash"] == "4.18.0"


def test_dev_dependency_is_patched():
    content = '{"dependencies": {"react": "^18.0.0"}, "devDependencies": {"jest": "^29.0.0"}}'

    updated = json.loads(update_package_json_dependency(content, "jest", "29.7.0"))

    assert updated["devDependencies"]["jest"] == "^29.7.0"
    assert updated["dependencies"]["react"] == "^18.0.0"


def test_key_order_and_trailing_newline_kept():
    content = '{\n  "name": "app",\n  "version": "1.0.0",\n  "dependencies": {\n    "b": "1.0.0",\n    "a": "^2.0.0"\n  }\n}\n'

    updated = update_package_json_dependency(content, "a", "2.1.0")

    assert updated == (
        '{\n  "name": "app",\n  "version": "1.0.0",\n  "dependencies": {\n'
        '    "b": "1.0.0",\n    "a": "^2.1.0"\n  }\n}\n'
    )


def test_no_trailing_newline_added_when_absent():
    updated = update_package_json_dependency('{"dependencies": {"a": "1.0.0"}}', "a", "1.0.1")

    assert not updated.endswith("\n")


def test_transitive_dependency_rejected():
    with pytest.raises(ManifestError, match="transitive"):
        update_package_json_dependency('{"dependencies": {"a": "1.0.0"}}', "lodash", "4.18.0")


def test_invalid_json_rejected():
    with pytest.raises(ManifestError, match="Invalid packages/web/package.json"):
        update_package_json_dependency("{not json", "lodash", "4.18.0", path="packages/web/package.json")


def test_non_object_manifest_rejected():
    with pytest.raises(ManifestError):
        update_package_json_dependency("[]", "lodash", "4.18.0")
