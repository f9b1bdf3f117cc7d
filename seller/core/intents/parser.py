"""
Command Parser.

Turns a buyer instruction into a TradeIntent. Two entry points:

- :func:`parse_command` reads the free-text grammar::

    swap <amount> <tokenIn> to <tokenOut> on <chain> [clauses]
    bridge <amount> <token> from <fromChain> to <toChain> [clauses]
    wrap|unwrap <amount> <symbol> on <chain> [clauses]
    transfer <amount> <token> on <chain> [clauses]

  where clauses are any of ``sender <addr>``, ``receiver [address] <addr>``,
  ``slippage <pct>`` and (bridge only) ``toToken <sym>``, in any order.
  A chain name may be followed by the word ``chain``.

- :func:`decode_request` is the boundary decode for whatever the job runtime
  hands over: a command string, or a structured object. A ``command`` field
  inside the object takes priority over the structured fields.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ...services.address import is_valid_evm_address, normalize_amount_string
from ..recovery.errors import ParseError
from .models import (
    INTENT_MODELS,
    BridgeIntent,
    SwapIntent,
    TransferIntent,
    WrapIntent,
)

USAGE = {
    "swap": "swap 5 USDC to ETH on base receiver 0x...",
    "bridge": "bridge 5 USDC from base to arbitrum receiver 0x...",
    "wrap": "wrap 0.01 ETH on base receiver 0x...",
    "unwrap": "unwrap 0.01 WETH on base receiver 0x...",
    "transfer": "transfer 250 USDC on base receiver 0x...",
}

SUPPORTED_VERBS = ("swap", "bridge", "wrap", "unwrap", "transfer")

_AMOUNT_RE = re.compile(r"^\d+(?:\.\d+)?$")
_SLIPPAGE_RE = re.compile(r"^\d+(?:\.\d+)?%?$")
_SYMBOL_RE = re.compile(r"^[A-Za-z0-9:_.\-]+$")
_CHAIN_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

_CLAUSE_KEYWORDS = {"sender", "receiver", "slippage", "totoken"}


@dataclass(frozen=True)
class Token:
    text: str
    position: int

    @property
    def lowered(self) -> str:
        return self.text.lower()


def tokenize(text: str) -> List[Token]:
    return [Token(match.group(0), match.start()) for match in re.finditer(r"\S+", text or "")]


class _CommandParser:
    """Recursive-descent reader over the token stream of one command."""

    def __init__(self, text: str):
        self.text = (text or "").strip()
        self.tokens = tokenize(self.text)
        self.index = 0
        self.verb = self.tokens[0].lowered if self.tokens else ""

    # -- token stream -----------------------------------------------------

    def _fail(self, message: Optional[str] = None) -> ParseError:
        usage = USAGE.get(self.verb)
        return ParseError(message or f"Unrecognized command. Example: {usage}", usage=usage)

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise self._fail()
        self.index += 1
        return token

    def _expect(self, keyword: str) -> None:
        if self._next().lowered != keyword:
            raise self._fail()

    def _accept(self, keyword: str) -> bool:
        token = self._peek()
        if token is not None and token.lowered == keyword:
            self.index += 1
            return True
        return False

    # -- terminals --------------------------------------------------------

    def _amount(self) -> str:
        token = self._next()
        if not _AMOUNT_RE.match(token.text):
            raise self._fail()
        return token.text

    def _symbol(self) -> str:
        token = self._next()
        if not _SYMBOL_RE.match(token.text) or token.lowered in _CLAUSE_KEYWORDS:
            raise self._fail()
        return token.text

    def _chain(self) -> str:
        token = self._next()
        if not _CHAIN_RE.match(token.text):
            raise self._fail()
        self._accept("chain")
        return token.text

    def _address(self, role: str) -> str:
        token = self._next()
        if not is_valid_evm_address(token.text):
            usage = USAGE.get(self.verb)
            raise ParseError(f"Invalid {role} address: {token.text}", usage=usage)
        return token.text

    # -- clauses ----------------------------------------------------------

    def _clauses(self, allow_to_token: bool = False, allow_slippage: bool = True) -> Dict[str, Any]:
        found: Dict[str, Any] = {}
        while self._peek() is not None:
            keyword = self._next().lowered
            if keyword in found or (keyword == "totoken" and "to_token" in found):
                raise self._fail(f"Duplicate clause: {keyword}")
            if keyword == "sender":
                found["sender"] = self._address("sender")
            elif keyword == "receiver":
                self._accept("address")
                found["receiver"] = self._address("receiver")
            elif keyword == "slippage" and allow_slippage:
                token = self._next()
                if not _SLIPPAGE_RE.match(token.text):
                    raise self._fail()
                found["slippage"] = float(token.text.rstrip("%"))
            elif keyword == "totoken" and allow_to_token:
                found["to_token"] = self._symbol()
            else:
                raise self._fail()

        if not found.get("receiver"):
            raise ParseError(
                "Missing receiver. Example: ... receiver 0xabc...",
                usage=USAGE.get(self.verb),
            )
        return found

    # -- productions ------------------------------------------------------

    def parse(self):
        if not self.tokens:
            raise ParseError(
                f"Empty command. Supported: {', '.join(SUPPORTED_VERBS)}.",
                usage=USAGE["swap"],
            )
        self.index = 1
        if self.verb == "swap":
            return self._swap()
        if self.verb == "bridge":
            return self._bridge()
        if self.verb in ("wrap", "unwrap"):
            return self._wrap()
        if self.verb == "transfer":
            return self._transfer()
        raise ParseError(
            f'Unknown command verb: "{self.verb}". Supported: {", ".join(SUPPORTED_VERBS)}.',
            usage=USAGE["swap"],
        )

    def _swap(self) -> SwapIntent:
        amount = self._amount()
        token_in = self._symbol()
        self._expect("to")
        token_out = self._symbol()
        self._expect("on")
        chain = self._chain()
        clauses = self._clauses()
        return SwapIntent(amount=amount, token_in=token_in, token_out=token_out, chain=chain, **clauses)

    def _bridge(self) -> BridgeIntent:
        amount = self._amount()
        token = self._symbol()
        self._expect("from")
        from_chain = self._chain()
        self._expect("to")
        to_chain = self._chain()
        clauses = self._clauses(allow_to_token=True)
        return BridgeIntent(amount=amount, token=token, from_chain=from_chain, to_chain=to_chain, **clauses)

    def _wrap(self) -> WrapIntent:
        amount = self._amount()
        symbol = self._symbol()
        self._expect("on")
        chain = self._chain()
        clauses = self._clauses(allow_slippage=False)
        return WrapIntent(action=self.verb, amount=amount, symbol=symbol, chain=chain, **clauses)

    def _transfer(self) -> TransferIntent:
        amount = self._amount()
        token = self._symbol()
        self._expect("on")
        chain = self._chain()
        clauses = self._clauses(allow_slippage=False)
        return TransferIntent(amount=amount, token=token, chain=chain, **clauses)


def parse_command(text: str):
    """Parse one free-text command into a TradeIntent.

    Raises:
        ParseError: unknown verb, malformed grammar or missing receiver.
    """

    return _CommandParser(text).parse()


def _first(payload: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = payload.get(name)
        if value is not None and value != "":
            return value
    return None


_TRUE = {"true", "1", "yes", "y", "on"}
_FALSE = {"false", "0", "no", "n", "off", ""}


def _flag(value: Any, name: str) -> bool:
    """Read a boolean field that may arrive as a bool, a number or a string."""

    if value is None:
        return False
    if isinstance(value, (bool, int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ParseError(f"Invalid {name}: {value}. Use true or false.")


def _slippage(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().rstrip("%").strip()
    if not text:
        return None
    try:
        return float(normalize_amount_string(text))
    except ValueError:
        raise ParseError(f"Invalid slippage: {value}") from None


def _dry_run(payload: Mapping[str, Any]) -> bool:
    return _flag(_first(payload, "dryRun", "dry_run"), "dryRun")


def _structured(payload: Mapping[str, Any], kind: str, default_chain: Optional[str]):
    usage = USAGE.get(kind, USAGE["swap"])

    raw_amount = _first(payload, "amount", "amountHuman")
    receiver = _first(payload, "receiver", "addressToTip") if kind == "transfer" else _first(payload, "receiver")
    if not receiver:
        raise ParseError("Missing receiver. Example: ... receiver 0xabc...", usage=usage)

    fields: Dict[str, Any] = {
        "amount": normalize_amount_string(raw_amount) if raw_amount is not None else None,
        "receiver": str(receiver).strip(),
        "sender": _first(payload, "sender"),
        "dryRun": _dry_run(payload),
        "slippage": _slippage(payload.get("slippage")),
    }

    if kind == "swap":
        fields.update(
            tokenIn=_first(payload, "tokenIn", "fromToken"),
            tokenOut=_first(payload, "tokenOut", "toToken"),
            chain=_first(payload, "chain"),
        )
    elif kind == "bridge":
        fields.update(
            token=_first(payload, "token", "tokenIn", "fromToken"),
            fromChain=_first(payload, "fromChain"),
            toChain=_first(payload, "toChain"),
            toToken=_first(payload, "toToken", "tokenOut"),
        )
    elif kind == "wrap":
        action = str(payload.get("action") or "wrap").strip().lower()
        if action not in ("wrap", "unwrap"):
            raise ParseError(f"Unknown wrap action: {action}", usage=usage)
        fields.update(
            action=action,
            symbol=_first(payload, "symbol", "token"),
            chain=_first(payload, "chain"),
        )
    elif kind == "transfer":
        fields.update(
            token=_first(payload, "token") or "USDC",
            chain=_first(payload, "chain") or default_chain,
        )

    missing = [name for name, value in fields.items() if value is None and name in _REQUIRED[kind]]
    if missing:
        raise ParseError(
            f"Missing fields: {', '.join(missing)}. Provide 'command' OR {{{', '.join(_REQUIRED[kind])}}}.",
            usage=usage,
        )

    try:
        return INTENT_MODELS[kind].model_validate({k: v for k, v in fields.items() if v is not None})
    except PydanticValidationError as exc:
        names = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise ParseError(f"Invalid request fields: {names}", usage=usage) from exc


_REQUIRED = {
    "swap": ("amount", "tokenIn", "tokenOut", "chain", "receiver"),
    "bridge": ("amount", "token", "fromChain", "toChain", "receiver"),
    "wrap": ("amount", "chain", "receiver"),
    "transfer": ("amount", "token", "chain", "receiver"),
}


def decode_request(
    request: Union[str, Mapping[str, Any], None],
    expected_kind: Optional[str] = None,
    *,
    default_chain: Optional[str] = None,
):
    """Decode a raw job request into exactly one TradeIntent variant.

    Args:
        request: Command string, or a mapping with either a ``command`` field
            or the structured fields of one intent kind.
        expected_kind: Offering kind the request was submitted to; a command
            of another kind is rejected.
        default_chain: Chain used by transfer requests that name none.

    Raises:
        ParseError: the request cannot be decoded.
    """

    if isinstance(request, str):
        intent = parse_command(request)
    elif isinstance(request, Mapping):
        command = request.get("command")
        if isinstance(command, str) and command.strip():
            intent = parse_command(command)
            if _dry_run(request):
                intent = intent.model_copy(update={"dry_run": True})
        else:
            kind = str(request.get("kind") or expected_kind or "").strip().lower()
            if kind == "unwrap":
                request = {**request, "action": "unwrap"}
                kind = "wrap"
            if kind not in INTENT_MODELS:
                raise ParseError(
                    f"Cannot determine request kind. Supported: {', '.join(SUPPORTED_VERBS)}.",
                    usage=USAGE["swap"],
                )
            intent = _structured(request, kind, default_chain)
    else:
        raise ParseError(
            "Request must be a command string or an object",
            usage=USAGE.get(expected_kind or "swap"),
        )

    if expected_kind and expected_kind != intent.kind:
        raise ParseError(
            f"Expected a {expected_kind} request, got {intent.kind}",
            usage=USAGE.get(expected_kind),
        )
    return intent
