# Overview: String identifiers for ledger records.

from __future__ import annotations

import uuid

from flask import current_app, has_app_context


def default_id_generator(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def new_id(prefix: str) -> str:
    """
    Produce a unique string id for a new record.

    The generator is taken from the ID_GENERATOR config value when set, so
    tests can make ids deterministic. It is called with the record prefix
    (prod, plat, sale, pur, smov, cmov, pay).
    """
    generator = None
    if has_app_context():
        generator = current_app.config.get("ID_GENERATOR")
    return (generator or default_id_generator)(prefix)
