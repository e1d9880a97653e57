"""
Tests for Keyring Assembly

End-to-end flows through create_keyring(): two accounts exchanging keys via
announcements and key files, with on-disk persistence.
"""

import pytest

from pqc_keyring import create_keyring
from pqc_keyring.config import Environment, KeyringConfig
from pqc_keyring.exceptions import (
    BackendUnavailableError,
    ConfigurationError,
    UnknownContactError,
)
from pqc_keyring.models import Account, KeyKind


class TestCreateKeyring:
    """Tests for create_keyring()."""

    def test_invalid_config(self, test_config):
        test_config.worker_threads = 0
        with pytest.raises(ConfigurationError):
            create_keyring(test_config)

    def test_mock_backend_refused_in_production_mode(self, monkeypatch, test_config):
        monkeypatch.setenv("PQC_KEYRING_PRODUCTION", "1")
        with pytest.raises(BackendUnavailableError):
            create_keyring(test_config)

    def test_memory_only(self, test_config):
        with create_keyring(test_config, persist=False) as keyring:
            keyring.registry.get(KeyKind.PQC_KEM).generate_key_pair("acct-1", "Kyber512")
        assert list(test_config.storage.resolved_directory.iterdir()) == []

    def test_persisted_across_instances(self, test_config):
        with create_keyring(test_config) as keyring:
            public_key = keyring.registry.get(KeyKind.PQC_SIGNATURE).generate_key_pair(
                "acct-1", "Dilithium2"
            )
            other, _ = keyring.backends[KeyKind.PQC_KEM].generate_keypair("Kyber512")
            keyring.cache.save_contact("bob@example.com", "Kyber512", other)

        with create_keyring(test_config) as keyring:
            store = keyring.registry.get(KeyKind.PQC_SIGNATURE)
            assert store.export_public_key("acct-1") == public_key
            assert keyring.cache.get_public_key("bob@example.com") == other

    def test_no_passphrase_keeps_pairs_in_memory(self, test_config):
        test_config.storage.store_passphrase = None
        with create_keyring(test_config) as keyring:
            keyring.registry.get(KeyKind.PQC_KEM).generate_key_pair("acct-1", "Kyber512")

        with create_keyring(test_config) as keyring:
            assert not keyring.registry.get(KeyKind.PQC_KEM).has_own_key_pair("acct-1")


class TestTwoAccounts:
    """Alice and Bob exchange keys on separate keyrings."""

    @pytest.fixture
    def pair(self, temp_dir):
        def build(name):
            config = KeyringConfig.for_environment(Environment.TESTING)
            config.storage.data_directory = temp_dir / name
            config.storage.store_passphrase = f"{name}-passphrase"
            config.algorithms.default_classical_algorithm = "Ed25519"
            return create_keyring(config)

        alice, bob = build("alice"), build("bob")
        yield alice, bob
        alice.close()
        bob.close()

    def test_announcement_exchange(self, pair):
        alice_ring, bob_ring = pair
        alice = Account("acct-1", "alice@example.com")

        alice_ring.keys.ensure_classical_key_pair(alice.account_id)
        alice_ring.registry.get(KeyKind.PQC_KEM).generate_key_pair(alice.account_id, "Kyber768")

        request = alice_ring.protocol.compose_announcement(alice, ["bob@example.com"])
        report = bob_ring.protocol.ingest_attachments(request.sender, request.attachments)

        assert report.success
        assert bob_ring.cache.get_algorithm("alice@example.com") == "Kyber768"

        ciphertext = bob_ring.kem.encapsulate_for("alice@example.com")
        assert len(ciphertext) == 1088

        # Alice has not learned Bob's keys yet
        with pytest.raises(UnknownContactError):
            alice_ring.kem.decapsulate_from(alice.account_id, "bob@example.com", ciphertext)

    def test_kem_shared_key(self, pair):
        alice_ring, bob_ring = pair
        alice = Account("acct-1", "alice@example.com")
        bob = Account("acct-9", "bob@example.com")

        for ring, account in ((alice_ring, alice), (bob_ring, bob)):
            ring.keys.ensure_classical_key_pair(account.account_id)
            ring.registry.get(KeyKind.PQC_KEM).generate_key_pair(account.account_id, "Kyber512")

        bob_ring.protocol.ingest_announcement(alice_ring.protocol.build_payload(alice).to_json())
        alice_ring.protocol.ingest_announcement(bob_ring.protocol.build_payload(bob).to_json())

        ciphertext = bob_ring.kem.encapsulate_for("alice@example.com")
        shared = alice_ring.kem.decapsulate_from(alice.account_id, "bob@example.com", ciphertext)

        assert shared == bob_ring.cache.get_contact("alice@example.com").shared_secret

    def test_key_file_exchange(self, pair, temp_dir):
        alice_ring, bob_ring = pair
        alice = Account("acct-1", "alice@example.com")
        public_key = alice_ring.registry.get(KeyKind.PQC_SIGNATURE).generate_key_pair(
            alice.account_id, "ML-DSA-44"
        )

        path = alice_ring.key_files.export_key_file(
            temp_dir / "alice.pqk", alice, KeyKind.PQC_SIGNATURE, password="shared-secret"
        )
        result = bob_ring.key_files.import_key_file(path, "acct-9", password="shared-secret")

        assert result.kind == KeyKind.PQC_SIGNATURE
        assert bob_ring.cache.get_public_key("alice@example.com", KeyKind.PQC_SIGNATURE) == (
            public_key
        )
