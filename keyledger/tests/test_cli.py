"""
Tests for the keyledger command line tool.
"""
import pytest

from keyledger.cli.main import build_parser, main, resolve_key_address
from keyledger.services.identity_service import identity_service
from keyledger.utils.addressing import derive_api_key_address, derive_service_address


@pytest.fixture
def db_args(tmp_path):
    return ["--database-url", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"]


def _run(db_args, *argv):
    return main([*db_args, *argv])


class TestParser:
    """Test argument parsing"""

    def test_resolve_key_from_address(self):
        args = build_parser().parse_args(["key-info", "--key", "abc"])
        assert resolve_key_address(args) == "abc"

    def test_resolve_key_from_parts(self):
        args = build_parser().parse_args(
            ["key-info", "--authority", "alice", "--owner", "bob", "--index", "2"]
        )
        expected = derive_api_key_address(derive_service_address("alice"), "bob", 2)
        assert resolve_key_address(args) == expected

    def test_resolve_key_requires_target(self):
        args = build_parser().parse_args(["key-info", "--authority", "alice"])
        with pytest.raises(SystemExit):
            resolve_key_address(args)

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "keyledger" in capsys.readouterr().out


class TestCommands:
    """Test CLI commands against a SQLite database"""

    def test_issue_token(self, capsys):
        assert main(["issue-token", "--as", "alice"]) == 0
        token = capsys.readouterr().out.strip()
        assert identity_service.verify_access_token(token).identity == "alice"

    def test_key_workflow(self, db_args, capsys):
        """Test init-service through record-request"""
        assert _run(db_args, "init-service", "--as", "alice", "--name", "Weather", "--rate-limit", "2") == 0
        assert "Service 建立成功" in capsys.readouterr().out

        assert _run(db_args, "create-key", "--as", "bob", "--authority", "alice",
                    "--name", "Dashboard", "--scopes", "read", "write") == 0
        out = capsys.readouterr().out
        assert "API Key 建立成功" in out
        assert "(#0)" in out

        target = ["--authority", "alice", "--owner", "bob", "--index", "0"]
        assert _run(db_args, "validate", *target, "--scope", "read") == 0
        assert "驗證通過" in capsys.readouterr().out

        assert _run(db_args, "record-request", "--as", "alice", *target) == 0
        assert "今日: 1/2" in capsys.readouterr().out

        assert _run(db_args, "key-info", *target) == 0
        assert "今日剩餘: 1" in capsys.readouterr().out

        assert _run(db_args, "service-info", "--authority", "alice") == 0
        out = capsys.readouterr().out
        assert "總 Key 數: 1" in out
        assert "活躍 Key 數: 1" in out

    def test_revoke_and_list(self, db_args, capsys):
        _run(db_args, "init-service", "--as", "alice", "--name", "Weather")
        _run(db_args, "create-key", "--as", "bob", "--authority", "alice", "--name", "One")
        _run(db_args, "create-key", "--as", "bob", "--authority", "alice", "--name", "Two")
        capsys.readouterr()

        target = ["--authority", "alice", "--owner", "bob", "--index", "0"]
        assert _run(db_args, "revoke", "--as", "bob", *target) == 0
        assert "已停用" in capsys.readouterr().out

        assert _run(db_args, "list-keys", "--authority", "alice", "--active-only") == 0
        out = capsys.readouterr().out
        assert "Two" in out
        assert "One" not in out

    def test_errors_exit_nonzero(self, db_args, capsys):
        _run(db_args, "init-service", "--as", "alice", "--name", "Weather")
        _run(db_args, "create-key", "--as", "bob", "--authority", "alice", "--name", "One")
        capsys.readouterr()

        target = ["--authority", "alice", "--owner", "bob", "--index", "0"]
        assert _run(db_args, "record-request", "--as", "bob", *target) == 1
        assert "Unauthorized" in capsys.readouterr().err

        assert _run(db_args, "validate", *target, "--scope", "admin") == 1
        assert "InsufficientPermissions" in capsys.readouterr().err

    def test_admin_updates(self, db_args, capsys):
        _run(db_args, "init-service", "--as", "alice", "--name", "Weather")
        _run(db_args, "create-key", "--as", "bob", "--authority", "alice", "--name", "One")
        capsys.readouterr()

        target = ["--authority", "alice", "--owner", "bob", "--index", "0"]
        assert _run(db_args, "update-rate-limit", "--as", "alice", *target, "--limit", "9") == 0
        assert "9" in capsys.readouterr().out

        assert _run(db_args, "update-scopes", "--as", "alice", *target, "--scopes", "*") == 0
        assert "*" in capsys.readouterr().out

        assert _run(db_args, "extend-expiration", "--as", "alice", *target, "--days", "30") == 0
        assert "到期時間已設定" in capsys.readouterr().out
