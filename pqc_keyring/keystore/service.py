"""
Key Service

Account-wide operations spanning every key kind.
"""

import logging
from typing import Dict, List, Optional

from ..exceptions import KeyringError
from ..models import AlgorithmState, KeyKind
from .registry import KeyStoreRegistry

logger = logging.getLogger(__name__)


class KeyService:
    """Operations over all key stores of an account."""

    def __init__(self, registry: KeyStoreRegistry):
        self.registry = registry

    def clear_all_user_keys(
        self,
        account_id: str,
        delete_remote_too: bool = False,
        identity: Optional[str] = None,
    ) -> List[KeyKind]:
        """
        Clear the account's pairs of every kind.

        Every store is attempted even if an earlier one fails; the first
        failure is raised afterwards.

        Returns:
            Kinds that held a pair before clearing
        """
        cleared: List[KeyKind] = []
        first_error: Optional[KeyringError] = None

        for store in self.registry:
            had_pair = store.has_own_key_pair(account_id)
            try:
                store.clear_all_keys(account_id, delete_remote_too, identity)
            except KeyringError as e:
                logger.error(f"Failed to clear {store.kind.label} keys for {account_id}: {e}")
                first_error = first_error or e
                continue
            if had_pair:
                cleared.append(store.kind)

        if first_error is not None:
            raise first_error
        return cleared

    def ensure_classical_key_pair(self, account_id: str, algorithm: Optional[str] = None) -> bool:
        """
        Generate a classical pair if the account has none.

        Returns:
            True if a pair was generated
        """
        store = self.registry.get(KeyKind.CLASSICAL)
        if store.has_own_key_pair(account_id):
            return False
        store.generate_key_pair(account_id, algorithm)
        return True

    def key_status(self, account_id: str) -> Dict[KeyKind, Dict[str, Optional[str]]]:
        """Algorithm state and algorithm per kind."""
        status: Dict[KeyKind, Dict[str, Optional[str]]] = {}
        for store in self.registry:
            state: AlgorithmState = store.algorithm_state(account_id)
            status[store.kind] = {
                "state": state.value,
                "algorithm": store.selected_algorithm(account_id),
            }
        return status
