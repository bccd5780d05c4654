"""
Store Serializer

Converts between model records and the bytes kept in Redis:

    market:{id}               JSON  MarketCandidate.to_dict()
    market:{id}:embedding     raw little-endian float32 vector
    contracts:{market_id}     hash  contract_id -> JSON ContractSnapshot.to_dict()
"""
from __future__ import annotations

import json
from typing import Any, Sequence

import numpy as np

from market_matcher.schemas import ContractSnapshot, MarketCandidate

_FLOAT32_LE = np.dtype("<f4")


class SerializationError(Exception):
    """Raised when a stored record cannot be encoded or decoded."""


def _loads(raw: str | bytes, what: str) -> dict[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SerializationError(f"Failed to deserialize {what}: {exc}") from exc
    if not isinstance(data, dict):
        raise SerializationError(f"Malformed {what} — expected object, got {type(data).__name__}")
    return data


def encode_market(market: MarketCandidate) -> str:
    return json.dumps(market.to_dict(), default=str)


def decode_market(raw: str | bytes) -> MarketCandidate:
    data = _loads(raw, "market")
    try:
        return MarketCandidate.from_dict(data)
    except (KeyError, ValueError, TypeError) as exc:
        raise SerializationError(f"Invalid market record: {exc}") from exc


def encode_contract(contract: ContractSnapshot) -> str:
    return json.dumps(contract.to_dict())


def decode_contract(raw: str | bytes) -> ContractSnapshot:
    data = _loads(raw, "contract")
    try:
        return ContractSnapshot.from_dict(data)
    except (KeyError, ValueError, TypeError) as exc:
        raise SerializationError(f"Invalid contract record: {exc}") from exc


def encode_vector(vector: Sequence[float]) -> bytes:
    if len(vector) == 0:
        raise SerializationError("Refusing to store an empty embedding")
    return np.asarray(vector, dtype=_FLOAT32_LE).tobytes()


def decode_vector(raw: bytes) -> np.ndarray:
    if len(raw) % _FLOAT32_LE.itemsize:
        raise SerializationError(
            f"Embedding byte length {len(raw)} is not a multiple of {_FLOAT32_LE.itemsize}"
        )
    return np.frombuffer(raw, dtype=_FLOAT32_LE)
