"""
Hashing Utilities — SHA-256 payload hashing for the payment audit trail.
"""
import hashlib
import json


def generate_hash(data: dict) -> str:
    """SHA-256 of a dictionary (sorted keys, datetimes rendered with str)."""
    canonical = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


def generate_chain_hash(current_data: dict, previous_hash: str = "") -> str:
    """SHA-256(previous_hash + hash(current_data)).

    Links each audit entry to the one before it for the same entity.
    """
    chain_input = f"{previous_hash}{generate_hash(current_data)}".encode("utf-8")
    return hashlib.sha256(chain_input).hexdigest()
