"""
Tests for the Keyring CLI
"""

import json

import pytest

from pqc_keyring.cli import build_parser, main
from pqc_keyring.models import KeyKind


@pytest.fixture
def cli_env(monkeypatch, temp_dir):
    """Testing environment with a data directory and store passphrase."""
    monkeypatch.setenv("PQC_KEYRING_ENVIRONMENT", "testing")
    monkeypatch.setenv("PQC_KEYRING_STORE_PASSPHRASE", "store-passphrase")
    return ["--data-dir", str(temp_dir / "data"), "--backend", "mock", "--no-color"]


class TestParser:
    """Tests for argument parsing."""

    def test_kind_aliases(self):
        parser = build_parser()
        assert parser.parse_args(["generate", "acct-1", "kem"]).kind == KeyKind.PQC_KEM
        assert parser.parse_args(["generate", "acct-1", "pgp"]).kind == KeyKind.CLASSICAL
        assert parser.parse_args(["generate", "acct-1", "pqc_sig"]).kind == KeyKind.PQC_SIGNATURE

    def test_unknown_kind(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["generate", "acct-1", "rot13"])


class TestCommands:
    """Tests for CLI commands against a temporary data directory."""

    def test_generate_and_status(self, cli_env, capsys):
        assert main(cli_env + ["generate", "acct-1", "pgp", "--algorithm", "Ed25519"]) == 0
        assert main(cli_env + ["generate", "acct-1", "kem", "--algorithm", "Kyber768"]) == 0
        capsys.readouterr()

        assert main(cli_env + ["status", "acct-1"]) == 0
        out = capsys.readouterr().out
        assert "Kyber768" in out
        assert "Ed25519" in out
        assert "key_pair_present" in out

    def test_unsupported_algorithm(self, cli_env, capsys):
        assert main(cli_env + ["generate", "acct-1", "sig", "--algorithm", "Kyber512"]) == 1
        assert "Unsupported algorithm" in capsys.readouterr().err

    def test_export_import(self, cli_env, temp_dir, capsys):
        path = temp_dir / "alice.pqk"
        main(cli_env + ["generate", "acct-1", "sig", "--algorithm", "Dilithium2"])

        assert main(
            cli_env + ["export", "acct-1", "sig", str(path), "--email", "alice@example.com"]
        ) == 0
        assert main(cli_env + ["import", "acct-2", str(path)]) == 0
        capsys.readouterr()

        assert main(cli_env + ["contacts", "--kind", "sig"]) == 0
        out = capsys.readouterr().out
        assert "alice@example.com" in out
        assert "Dilithium2" in out

    def test_export_private_needs_password(self, cli_env, temp_dir, capsys):
        main(cli_env + ["generate", "acct-1", "kem"])
        code = main(
            cli_env
            + [
                "export", "acct-1", "kem", str(temp_dir / "k.pqk"),
                "--email", "alice@example.com", "--include-private",
            ]
        )
        assert code == 1
        assert "password" in capsys.readouterr().err

    def test_announce_and_ingest(self, cli_env, temp_dir):
        outbox = temp_dir / "outbox"
        main(cli_env + ["generate", "acct-1", "pgp", "--algorithm", "Ed25519"])
        main(cli_env + ["generate", "acct-1", "kem"])

        assert main(
            cli_env
            + [
                "announce", "acct-1", "--email", "alice@example.com",
                "--to", "bob@example.com", "--outbox", str(outbox),
            ]
        ) == 0
        documents = list(outbox.glob("*.json"))
        assert len(documents) == 1
        assert json.loads(documents[0].read_text())["recipients"] == ["bob@example.com"]

    def test_announce_without_classical_key(self, cli_env, temp_dir, capsys):
        main(cli_env + ["generate", "acct-1", "kem"])
        code = main(
            cli_env
            + [
                "announce", "acct-1", "--email", "alice@example.com",
                "--to", "bob@example.com", "--outbox", str(temp_dir / "outbox"),
            ]
        )
        assert code == 1
        assert "classical" in capsys.readouterr().err

    def test_clear(self, cli_env, capsys):
        main(cli_env + ["generate", "acct-1", "kem"])
        capsys.readouterr()
        assert main(cli_env + ["clear", "acct-1"]) == 0
        assert "PQC KEM" in capsys.readouterr().out
        assert main(cli_env + ["clear", "acct-1", "--kind", "kem"]) == 0
        assert "nothing" in capsys.readouterr().out

    def test_show_config(self, cli_env, capsys):
        assert main(cli_env + ["config"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["backend"] == "mock"
        assert "store_passphrase" not in data["storage"]

    def test_sign_and_verify(self, cli_env, temp_dir, capsys):
        message = temp_dir / "message.txt"
        message.write_bytes(b"quarterly report")
        signature = temp_dir / "message.sig"

        main(cli_env + ["generate", "acct-1", "pgp", "--algorithm", "Ed25519"])
        main(cli_env + ["generate", "acct-1", "sig", "--algorithm", "Dilithium2"])
        for kind in ("pgp", "sig"):
            path = temp_dir / f"alice-{kind}.pqk"
            main(cli_env + ["export", "acct-1", kind, str(path), "--email", "alice@example.com"])
            main(cli_env + ["import", "acct-2", str(path)])
        capsys.readouterr()

        assert main(cli_env + ["sign", "acct-1", str(message), "--out", str(signature)]) == 0
        assert set(json.loads(signature.read_text())) == {"pgp", "pqc-sig"}

        assert main(cli_env + ["verify", "alice@example.com", str(message), str(signature)]) == 0
        assert "Valid" in capsys.readouterr().out

        message.write_bytes(b"quarterly report, edited")
        assert main(cli_env + ["verify", "alice@example.com", str(message), str(signature)]) == 1
        assert "Invalid" in capsys.readouterr().out
