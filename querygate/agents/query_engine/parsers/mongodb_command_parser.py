"""
Parser for the subset of MongoDB shell commands the gateway accepts.

Commands are parsed into plain dataclasses and executed through pymongo; the
text is never evaluated. Accepted forms::

    db.<collection>.find(filter?, projection?)[.sort(spec)][.skip(n)][.limit(n)][.project(spec)][.toArray()]
    db.<collection>.findOne(filter?, projection?)
    db.<collection>.aggregate([stage, ...], options?)[.toArray()]
    db.<collection>.countDocuments(filter?)
    db.<collection>.estimatedDocumentCount()
    db.<collection>.distinct("field", filter?)
    db.getCollectionNames()

``db.getCollection("name")`` may replace ``db.<collection>``. Arguments use
shell literal syntax: JSON plus unquoted keys, single-quoted strings,
trailing commas, ObjectId(), ISODate(), new Date(), NumberLong(),
NumberInt(), NumberDecimal() and /regex/flags literals.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import InvalidOperation
from typing import Any, Dict, List, Optional, Union

from bson import Decimal128, Int64, ObjectId, Regex
from bson.errors import InvalidId

from querygate.agents.utils.errors import UnsupportedQueryFormError


COMMAND_PREFIX = "db."

_IDENT_START = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_$")
_IDENT_CHARS = _IDENT_START | set("0123456789")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "0": "\0", "v": "\v"}
_EMPTY = object()

# Same bound BSON itself puts on document nesting
MAX_NESTING_DEPTH = 100


@dataclass
class FindCommand:
    collection: str
    filter: Dict[str, Any] = field(default_factory=dict)
    projection: Optional[Dict[str, Any]] = None
    sort: Optional[Dict[str, Any]] = None
    skip: int = 0
    limit: int = 0
    single: bool = False


@dataclass
class AggregateCommand:
    collection: str
    pipeline: List[Dict[str, Any]]
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CountDocumentsCommand:
    collection: str
    filter: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EstimatedDocumentCountCommand:
    collection: str


@dataclass
class DistinctCommand:
    collection: str
    key: str
    filter: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ListCollectionsCommand:
    pass


MongoCommand = Union[
    FindCommand,
    AggregateCommand,
    CountDocumentsCommand,
    EstimatedDocumentCountCommand,
    DistinctCommand,
    ListCollectionsCommand,
]


def has_command_prefix(query_text: str) -> bool:
    return (query_text or "").strip().lower().startswith(COMMAND_PREFIX)


def parse_mongodb_command(query_text: str) -> MongoCommand:
    """Parse a shell command string, raising UnsupportedQueryFormError on anything outside the grammar."""
    if not has_command_prefix(query_text):
        raise UnsupportedQueryFormError(
            message='Only MongoDB commands starting with "db." are supported',
            engine_type="MongoDB",
        )
    return _CommandParser(query_text.strip()).parse()


class _CommandParser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.depth = 0

    # -- command level -------------------------------------------------

    def parse(self) -> MongoCommand:
        # The prefix check is case-insensitive; consume it as written
        self.pos = len(COMMAND_PREFIX)
        name = self._identifier()

        if name == "getCollectionNames":
            self._expect_no_args()
            command: MongoCommand = ListCollectionsCommand()
        else:
            if name == "getCollection" and self._peek() == "(":
                args = self._arguments()
                if len(args) != 1 or not isinstance(args[0], str) or not args[0]:
                    self._fail("getCollection() takes one collection name")
                collection = args[0]
                self._expect(".")
                method = self._identifier()
            else:
                # Collection names may contain dots: db.system.profile.find()
                parts = [name]
                self._expect(".")
                method = self._identifier()
                while self._peek() == ".":
                    parts.append(method)
                    self._advance()
                    method = self._identifier()
                collection = ".".join(parts)
            command = self._collection_method(collection, method)

        self._skip_ws()
        if self._peek() == ";":
            self._advance()
            self._skip_ws()
        if self.pos != len(self.text):
            self._fail("unexpected trailing input")
        return command

    def _collection_method(self, collection: str, method: str) -> MongoCommand:
        self._skip_ws()
        if self._peek() != "(":
            self._fail(f"expected a call to {method}()")
        args = self._arguments()

        if method in ("find", "findOne"):
            self._check_arity(method, args, 0, 2)
            command = FindCommand(
                collection=collection,
                filter=self._document_arg(method, args, 0),
                projection=self._document_arg(method, args, 1, default=None),
                single=method == "findOne",
            )
            if not command.single:
                self._find_modifiers(command)
            return command

        if method == "aggregate":
            self._check_arity(method, args, 1, 2)
            pipeline = args[0]
            if not isinstance(pipeline, list) or not all(isinstance(stage, dict) for stage in pipeline):
                self._fail("aggregate() expects an array of stage documents")
            command = AggregateCommand(
                collection=collection,
                pipeline=pipeline,
                options=self._document_arg(method, args, 1),
            )
            self._optional_to_array()
            return command

        if method in ("countDocuments", "count"):
            self._check_arity(method, args, 0, 1)
            return CountDocumentsCommand(collection=collection, filter=self._document_arg(method, args, 0))

        if method == "estimatedDocumentCount":
            self._check_arity(method, args, 0, 0)
            return EstimatedDocumentCountCommand(collection=collection)

        if method == "distinct":
            self._check_arity(method, args, 1, 2)
            if not isinstance(args[0], str) or not args[0]:
                self._fail("distinct() expects a field name string")
            return DistinctCommand(collection=collection, key=args[0], filter=self._document_arg(method, args, 1))

        self._fail(f"unsupported collection method '{method}'")

    def _find_modifiers(self, command: FindCommand) -> None:
        self._skip_ws()
        while self._peek() == ".":
            self._advance()
            name = self._identifier()
            if name == "toArray":
                self._expect_no_args()
                return
            args = self._arguments()
            if name == "sort" and len(args) == 1 and isinstance(args[0], dict):
                command.sort = args[0]
            elif name == "project" and len(args) == 1 and isinstance(args[0], dict):
                command.projection = args[0]
            elif name in ("limit", "skip") and len(args) == 1 and self._is_int(args[0]) and args[0] >= 0:
                setattr(command, name, int(args[0]))
            else:
                self._fail(f"unsupported cursor modifier '{name}'")
            self._skip_ws()

    def _optional_to_array(self) -> None:
        self._skip_ws()
        if self._peek() == ".":
            self._advance()
            if self._identifier() != "toArray":
                self._fail("only .toArray() may follow aggregate()")
            self._expect_no_args()

    def _document_arg(self, method: str, args: List[Any], index: int, default: Any = _EMPTY) -> Any:
        if index >= len(args):
            return {} if default is _EMPTY else default
        value = args[index]
        if not isinstance(value, dict):
            self._fail(f"argument {index + 1} of {method}() must be a document")
        return value

    def _check_arity(self, method: str, args: List[Any], low: int, high: int) -> None:
        if not low <= len(args) <= high:
            self._fail(f"{method}() takes {low} to {high} arguments, got {len(args)}")

    @staticmethod
    def _is_int(value: Any) -> bool:
        return isinstance(value, int) and not isinstance(value, bool)

    # -- literals ------------------------------------------------------

    def _arguments(self) -> List[Any]:
        self._expect("(")
        args: List[Any] = []
        self._skip_ws()
        while self._peek() != ")":
            args.append(self._value())
            self._skip_ws()
            if self._peek() == ",":
                self._advance()
                self._skip_ws()
            elif self._peek() != ")":
                self._fail("expected ',' or ')'")
        self._advance()
        return args

    def _expect_no_args(self) -> None:
        if self._arguments():
            self._fail("no arguments expected")

    def _value(self) -> Any:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            self._fail(f"nesting deeper than {MAX_NESTING_DEPTH} levels")
        try:
            return self._literal()
        finally:
            self.depth -= 1

    def _literal(self) -> Any:
        self._skip_ws()
        ch = self._peek()
        if ch == "{":
            return self._object()
        if ch == "[":
            return self._array()
        if ch in ("'", '"'):
            return self._string()
        if ch == "/":
            return self._regex()
        if ch == "-" or ch.isdigit():
            return self._number()
        if ch in _IDENT_START:
            return self._word_value()
        self._fail("expected a value")

    def _object(self) -> Dict[str, Any]:
        self._expect("{")
        result: Dict[str, Any] = {}
        self._skip_ws()
        while self._peek() != "}":
            if self._peek() in ("'", '"'):
                key = self._string()
            elif self._peek() in _IDENT_START:
                key = self._identifier()
            else:
                self._fail("expected a field name")
            self._expect(":")
            result[key] = self._value()
            self._skip_ws()
            if self._peek() == ",":
                self._advance()
                self._skip_ws()
            elif self._peek() != "}":
                self._fail("expected ',' or '}'")
        self._advance()
        return result

    def _array(self) -> List[Any]:
        self._expect("[")
        result: List[Any] = []
        self._skip_ws()
        while self._peek() != "]":
            result.append(self._value())
            self._skip_ws()
            if self._peek() == ",":
                self._advance()
                self._skip_ws()
            elif self._peek() != "]":
                self._fail("expected ',' or ']'")
        self._advance()
        return result

    def _string(self) -> str:
        quote = self._peek()
        self._advance()
        chars = []
        while True:
            if self.pos >= len(self.text):
                self._fail("unterminated string")
            ch = self.text[self.pos]
            self.pos += 1
            if ch == quote:
                return "".join(chars)
            if ch == "\\":
                if self.pos >= len(self.text):
                    self._fail("unterminated string")
                esc = self.text[self.pos]
                self.pos += 1
                if esc == "u":
                    digits = self.text[self.pos:self.pos + 4]
                    if len(digits) != 4:
                        self._fail("bad unicode escape")
                    try:
                        chars.append(chr(int(digits, 16)))
                    except ValueError:
                        self._fail("bad unicode escape")
                    self.pos += 4
                else:
                    chars.append(_ESCAPES.get(esc, esc))
            else:
                chars.append(ch)

    def _number(self) -> Union[int, float]:
        start = self.pos
        if self._peek() == "-":
            self._advance()
        while self._peek() and (
            self._peek().isdigit()
            or self._peek() in ".eE"
            or (self._peek() in "+-" and self.text[self.pos - 1] in "eE")
        ):
            self._advance()
        token = self.text[start:self.pos]
        try:
            if any(c in token for c in ".eE"):
                return float(token)
            return int(token)
        except ValueError:
            self._fail(f"invalid number '{token}'")

    def _regex(self) -> Regex:
        self._expect("/")
        chars = []
        while True:
            if self.pos >= len(self.text):
                self._fail("unterminated regular expression")
            ch = self.text[self.pos]
            self.pos += 1
            if ch == "\\" and self.pos < len(self.text):
                chars.append(ch + self.text[self.pos])
                self.pos += 1
            elif ch == "/":
                break
            else:
                chars.append(ch)
        flags_start = self.pos
        while self._peek() in set("imsxu") and self._peek():
            self._advance()
        return Regex("".join(chars), self.text[flags_start:self.pos])

    def _word_value(self) -> Any:
        word = self._identifier()
        if word == "true":
            return True
        if word == "false":
            return False
        if word in ("null", "undefined"):
            return None
        if word == "new":
            self._skip_ws()
            word = self._identifier()
        args = self._arguments()
        return self._construct(word, args)

    def _construct(self, name: str, args: List[Any]) -> Any:
        if name == "ObjectId":
            if len(args) != 1 or not isinstance(args[0], str):
                self._fail("ObjectId() expects a hex string")
            try:
                return ObjectId(args[0])
            except InvalidId:
                self._fail(f"invalid ObjectId '{args[0]}'")
        if name in ("ISODate", "Date"):
            if not args:
                return datetime.now(timezone.utc)
            if len(args) == 1 and isinstance(args[0], str):
                return self._parse_date(args[0])
            if len(args) == 1 and self._is_int(args[0]):
                return datetime.fromtimestamp(args[0] / 1000, tz=timezone.utc)
            self._fail(f"{name}() expects an ISO-8601 string or epoch milliseconds")
        if name in ("NumberLong", "NumberInt"):
            if len(args) != 1:
                self._fail(f"{name}() expects one argument")
            try:
                number = int(args[0])
            except (TypeError, ValueError):
                self._fail(f"invalid {name} value {args[0]!r}")
            return Int64(number) if name == "NumberLong" else number
        if name == "NumberDecimal":
            if len(args) != 1 or not isinstance(args[0], (str, int, float)):
                self._fail("NumberDecimal() expects one argument")
            try:
                return Decimal128(str(args[0]))
            except (InvalidOperation, ValueError):
                self._fail(f"invalid NumberDecimal value {args[0]!r}")
        self._fail(f"unsupported constructor '{name}'")

    def _parse_date(self, text: str) -> datetime:
        value = text.strip()
        if value.endswith("Z") or value.endswith("z"):
            value = value[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            self._fail(f"invalid date '{text}'")
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    # -- scanning ------------------------------------------------------

    def _identifier(self) -> str:
        self._skip_ws()
        start = self.pos
        if self._peek() not in _IDENT_START or not self._peek():
            self._fail("expected an identifier")
        while self._peek() and self._peek() in _IDENT_CHARS:
            self._advance()
        return self.text[start:self.pos]

    def _expect(self, ch: str) -> None:
        self._skip_ws()
        if self._peek() != ch:
            self._fail(f"expected '{ch}'")
        self._advance()

    def _peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _advance(self) -> None:
        self.pos += 1

    def _skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _fail(self, reason: str):
        raise UnsupportedQueryFormError(
            message=f"Unsupported MongoDB command at position {self.pos}: {reason}",
            engine_type="MongoDB",
        )
