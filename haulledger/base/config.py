# The MIT License (MIT)
# Copyright © 2023 Yuma Rao
# Copyright © 2023 Opentensor Foundation

# Permission is hereby granted, free of charge, to any person obtaining a copy of this software and associated
# documentation files (the “Software”), to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so, subject to the following conditions:

# The above copyright notice and this permission notice shall be included in all copies or substantial portions of
# the Software.

# THE SOFTWARE IS PROVIDED “AS IS”, WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO
# THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION
# OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER
# DEALINGS IN THE SOFTWARE.

import argparse
import os
from typing import Any, Mapping, Optional

import bittensor as bt
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_PREFIX = "HAULLEDGER_"

# env var suffix -> LedgerConfig field
ENV_FIELDS = {
    "LEDGER__CONTRACT_ADDRESS": "contract_address",
    "LEDGER__RPC_URL": "rpc_url",
    "LEDGER__CREDENTIAL": "credential",
    "LEDGER__OPEN": "ledger_open",
    "LEDGER__TIMEOUT": "request_timeout",
    "CHART__ONCHAIN": "onchain_chart",
    "CHARTER__OPEN": "charter_open",
    "CHARTER__URL": "charter_url",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


class LedgerConfig(BaseModel):
    """Immutable client configuration, passed to components at construction."""

    model_config = ConfigDict(frozen=True)

    contract_address: str = ""
    rpc_url: str = "http://localhost:8545"
    credential: str = Field(default="", repr=False)
    onchain_chart: bool = False
    ledger_open: bool = True
    charter_open: bool = True
    charter_url: str = "/charter"
    request_timeout: float = Field(default=30.0, gt=0)

    @field_validator("onchain_chart", "ledger_open", "charter_open", mode="before")
    @classmethod
    def _coerce_bool(cls, v: Any) -> bool:
        return parse_bool(v)

    @property
    def has_credential(self) -> bool:
        return bool(self.credential.strip())


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> LedgerConfig:
    r"""Build a LedgerConfig.

    Priority: explicit overrides (CLI) > environment > .env > defaults.
    The .env file is skipped when HAULLEDGER_TEST_MODE=true.
    """
    if environ is None:
        if os.environ.get(f"{ENV_PREFIX}TEST_MODE") != "true":
            load_dotenv()
        environ = os.environ

    values: dict[str, Any] = {}
    for suffix, field_name in ENV_FIELDS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is not None:
            values[field_name] = raw

    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    config = LedgerConfig(**values)
    bt.logging.debug({"ledger_config": config.model_dump(exclude={"credential"})})
    return config


def add_args(parser: argparse.ArgumentParser) -> None:
    """
    Adds ledger client arguments to the parser.
    """
    parser.add_argument(
        "--ledger.contract_address",
        type=str,
        help="Address of the ledger contract.",
        default=None,
    )
    parser.add_argument(
        "--ledger.rpc_url",
        type=str,
        help="JSON-RPC endpoint of the ledger node.",
        default=None,
    )
    parser.add_argument(
        "--ledger.timeout",
        type=float,
        help="Request timeout in seconds for ledger reads.",
        default=None,
    )
    parser.add_argument(
        "--chart.onchain",
        action="store_true",
        help="Ask the ledger to render the round chart instead of linking to the charter.",
        default=None,
    )


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Map parsed CLI args onto LedgerConfig field overrides."""
    return {
        "contract_address": getattr(args, "ledger.contract_address", None),
        "rpc_url": getattr(args, "ledger.rpc_url", None),
        "request_timeout": getattr(args, "ledger.timeout", None),
        "onchain_chart": getattr(args, "chart.onchain", None),
    }
