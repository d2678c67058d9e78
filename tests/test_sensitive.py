"""Tests for sensitive-name and status skip rules."""

import pytest

from hermesbridge.utils.sensitive import NameRules, sensitive_rules, status_ignore_rules


@pytest.mark.parametrize(
    "path",
    [
        ".env",
        ".env.production",
        ".ssh/id_rsa",
        "secrets.json",
        "config/client_secret.txt",
        "github_token",
        "credentials.yml",
        "tls/server.key",
        "cert.pem",
        "deploy_key",
        "signing-key.asc",
        "my_api_key.txt",
        "id_ed25519.pub",
    ],
)
def test_sensitive_names_match(path):
    """Test that credential-looking names are caught."""
    assert sensitive_rules().matches(path)


@pytest.mark.parametrize("path", ["README.md", "src/main.py", "package.json", "docs/keyboard.md", "monkey.py"])
def test_normal_names_do_not_match(path):
    """Test that ordinary files are not caught."""
    assert not sensitive_rules().matches(path)


def test_root_never_matches():
    """Test that the workspace root itself is never sensitive."""
    rules = sensitive_rules()

    assert not rules.matches("")
    assert not rules.matches(".")


def test_status_ignores():
    """Test that build and VCS directories are skipped."""
    rules = status_ignore_rules()

    assert rules.matches(".git/config")
    assert rules.matches("node_modules/pkg/index.js")
    assert rules.matches("web/node_modules/pkg/index.js")
    assert not rules.matches("src/main.py")


def test_custom_rules_skip_comments_and_blanks():
    """Test building rules from arbitrary lines."""
    rules = NameRules(["# comment", "", "*.log"])

    assert rules.matches("debug.log")
    assert not rules.matches("comment")
