"""Tests for the pin auditor rule table and directory scan."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from devstate.core.pin_audit import (
    DEFAULT_RULES,
    AuditRule,
    InstallKind,
    PinAuditor,
    Verdict,
    classify,
    parse_line,
    scan,
)
from devstate.errors import PinAuditError


def _verdict(text: str) -> Verdict | None:
    rule = classify(parse_line(text))
    return rule.verdict if rule else None


class TestParseLine:
    def test_pip_install(self):
        line = parse_line("pip install --user requests flask")
        assert line.kind is InstallKind.PIP
        assert line.packages == ("requests", "flask")

    def test_npm_global(self):
        line = parse_line("  npm install -g typescript@5.3.3 && echo ok")
        assert line.kind is InstallKind.NPM_GLOBAL
        assert line.packages == ("typescript@5.3.3",)

    def test_npm_local_is_not_install_line(self):
        assert parse_line("npm install express").kind is None

    def test_unbalanced_quotes_fall_back(self):
        line = parse_line('pip install "requests')
        assert line.kind is InstallKind.PIP


class TestClassification:
    @pytest.mark.parametrize(
        "text",
        [
            "pip install requests==2.31.0",
            "npm install -g typescript@5.3.3",
            "npm install -g @types/node@20.11.0",
            "    pip3 install --user numpy==1.26.4 pandas==2.2.0",
        ],
    )
    def test_pinned_passes(self, text: str):
        assert _verdict(text) is Verdict.ALLOW

    @pytest.mark.parametrize(
        "text",
        [
            "pip install requests",
            "pip install --user flask",
            "npm install -g typescript",
            "npm install -g @vue/cli",
            "npm install -g npm@latest",
            "python3 -m pip install jupyter",
            "[ \"$mode\" == full ] && pip install flask",
            "npm install -g \"$pkgs\"",
            "npm install -g $pkg_manager",
            "pip install --user $core_pkgs_extra",
        ],
    )
    def test_unpinned_fails(self, text: str):
        assert _verdict(text) is Verdict.DENY

    @pytest.mark.parametrize(
        ("text", "rule"),
        [
            ("# pip install requests", "comment"),
            ("    # npm install -g typescript", "comment"),
            ('source version-resolver.sh && pip install "$x"', "resolver_marker"),
            ("pip install $(devstate manifest pip-args core)", "resolver_marker"),
            ("pip_install_pinned() { pip install \"$@\"; }", "pip_helper_definition"),
            ("pip install -r requirements.txt", "pip_requirements_file"),
            ("pip install --user $core_pkgs", "pip_resolver_variable"),
            ('pip install --user "${core_pkgs[@]}"', "pip_resolver_variable"),
            ('pip install $(build_pip_install_args ml)', "pip_resolver_variable"),
            ('npm install -g "${pkg}@${pinned}"', "npm_resolver_variable"),
            ('npm install -g "$pkg"', "npm_resolver_variable"),
            ("npm install -g", "npm_flag_only"),
            ("npm install -g --silent", "npm_flag_only"),
            ("npm install -g typescript yarn pnpm create-react-app @vue/cli @angular/cli",
             "npm_legacy_fallback"),
            ("pip install requests", "unpinned"),
        ],
    )
    def test_deciding_rule(self, text: str, rule: str):
        decided = classify(parse_line(text))
        assert decided is not None
        assert decided.name == rule

    @pytest.mark.parametrize(
        "text",
        [
            "sudo apt install -y cmake",
            "brew install git",
            "echo done",
            "",
            "pipx install black",
        ],
    )
    def test_non_install_lines_ignored(self, text: str):
        assert classify(parse_line(text)) is None

    def test_rule_table_is_extensible(self):
        allow_latest_npm = AuditRule(
            name="allow_npm_self_update",
            kinds=frozenset({InstallKind.NPM_GLOBAL}),
            predicate=lambda line: line.packages == ("npm@latest",),
            verdict=Verdict.ALLOW,
        )
        rules = (allow_latest_npm, *DEFAULT_RULES)
        assert classify(parse_line("npm install -g npm@latest"), rules).name == "allow_npm_self_update"
        assert classify(parse_line("npm install -g eslint"), rules).name == "unpinned"

    def test_table_ends_with_catch_all_deny(self):
        assert DEFAULT_RULES[-1].verdict is Verdict.DENY


class TestScan:
    def test_findings_with_relative_paths(self, scripts_dir: Path):
        report = scan(scripts_dir)
        assert report.status == "fail"
        assert report.files_scanned == 2
        assert [(f.file, f.line_number, f.line) for f in report.findings] == [
            ("setup-webdev.sh", 3, "pip install flask"),
            ("setup-webdev.sh", 4, "npm install -g nodemon"),
        ]

    def test_render(self, scripts_dir: Path):
        finding = scan(scripts_dir).findings[0]
        assert finding.render() == "[UNPINNED] setup-webdev.sh: pip install flask"

    def test_clean_tree_passes(self, scripts_dir: Path):
        (scripts_dir / "setup-webdev.sh").unlink()
        report = scan(scripts_dir)
        assert report.status == "pass"
        assert report.findings == []

    def test_nested_directories_scanned(self, scripts_dir: Path):
        nested = scripts_dir / "extra"
        nested.mkdir()
        (nested / "setup-ml.sh").write_text("pip install torch\n", encoding="utf-8")
        files = {f.file for f in scan(scripts_dir).findings}
        assert "extra/setup-ml.sh" in files

    def test_glob_filter(self, scripts_dir: Path):
        (scripts_dir / "notes.md").write_text("pip install anything\n", encoding="utf-8")
        assert scan(scripts_dir).files_scanned == 2
        assert PinAuditor(globs=("*.sh", "*.md")).scan(scripts_dir).files_scanned == 3

    def test_missing_root_is_tool_error(self, tmp_dir: Path):
        with pytest.raises(PinAuditError, match="not a directory"):
            scan(tmp_dir / "nope")

    def test_report_serializes(self, scripts_dir: Path):
        payload = json.loads(scan(scripts_dir).model_dump_json())
        assert payload["status"] == "fail"
        assert payload["findings"][0]["file"] == "setup-webdev.sh"
