"""
Script sandbox: recovers the signature transform from a player script.

The player script is untrusted. Nothing in it is executed except small
snippets (one helper object, one function) that are cut out of the source
and run in a fresh JSInterpreter with a fixed set of builtins, a step
budget and an abort event.

Extraction works structurally rather than by name:

1. Find one-argument functions shaped like
   ``function(a){a=a.split("");X.m1(a,3);X.m2(a,41);return a.join("")}``,
   where every statement is a call on one sibling helper object.
   Known call-site patterns only order the candidates.
2. Classify every helper method by running it on a probe array and
   looking at what it did (reversed, removed a contiguous run, swapped two
   elements). Methods the probe cannot explain fall back to matching
   their source text.
3. Verify the decoded operation list by running the whole transform in
   the interpreter on a probe signature.
"""

import asyncio
import functools
import logging
import re
import string
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from ..config import get_settings
from ..errors import (
    CipherError,
    ExtractionFailedError,
    NoMatchingFunctionError,
    UnsupportedOperationError,
)
from .cipher import CipherOperation, CipherProgram
from .js_interpreter import JS_UNDEFINED, JSAbort, JSFunction, JSInterpreter, JSInterpreterError

logger = logging.getLogger(__name__)

_NAME = r"[a-zA-Z_$][\w$]*"

# Candidate transform functions: split into characters, helper calls, join
_TRANSFORM_FUNC_RE = re.compile(
    rf"""(?x)
    (?:function\s+(?P<fname>{_NAME})|(?P<vname>{_NAME})\s*=\s*function)
    \s*\(\s*(?P<arg>{_NAME})\s*\)\s*\{{
        \s*(?P=arg)\s*=\s*(?P=arg)\.split\(\s*(?:""|'')\s*\)\s*[;,]
        (?P<body>[^{{}}]*?)
        [;,]?\s*return\s+(?P=arg)\.join\(\s*(?:""|'')\s*\)\s*;?\s*
    \}}
    """
)

_HELPER_CALL = rf"""
    (?:(?P<assign>{_NAME})\s*=\s*)?
    (?P<obj>{_NAME})\s*(?:\.\s*(?P<meth>{_NAME})|\[\s*["'](?P<qmeth>{_NAME})["']\s*\])
    \s*\(\s*(?P<target>{_NAME})\s*,\s*(?P<num>\d+)\s*\)
"""
_HELPER_CALL_RE = re.compile(_HELPER_CALL, re.VERBOSE)
_HELPER_BODY_RE = re.compile(
    rf"(?:\s*{_HELPER_CALL}\s*[;,]?)+\s*",
    re.VERBOSE,
)

# Call sites that hand a signature to the transform. Names found here are
# tried first; they are never required.
_CALL_SITE_PATTERNS = [
    r"\b[cs]\s*&&\s*[adf]\.set\([^,]+\s*,\s*encodeURIComponent\(\s*(?P<name>[a-zA-Z0-9$]+)\(",
    r"\b[a-zA-Z0-9]+\s*&&\s*[a-zA-Z0-9]+\.set\([^,]+\s*,\s*encodeURIComponent\(\s*(?P<name>[a-zA-Z0-9$]+)\(",
    r"\bm=(?P<name>[a-zA-Z0-9$]{2,})\(decodeURIComponent\(h\.s\)\)",
    r"\bc\s*&&\s*[a-z]\.set\([^,]+\s*,\s*(?:encodeURIComponent\s*\()?\s*(?P<name>[a-zA-Z0-9$]+)\(",
    r"\.sig\|\|(?P<name>[a-zA-Z0-9$]+)\(",
]

# Source-text fallbacks for helper methods the probe could not classify
_REVERSE_SRC_RE = re.compile(rf"(?:return\s+)?({_NAME})\.reverse\(\)")
_SLICE_SRC_RE = re.compile(rf"return\s+({_NAME})\.slice\(\s*({_NAME})\s*\)")
_SPLICE_SRC_RE = re.compile(rf"({_NAME})\.splice\(\s*0\s*,\s*({_NAME})\s*\)")
_SWAP_SRC_RE = re.compile(
    rf"var\s+({_NAME})\s*=\s*({_NAME})\[0\]\s*;\s*\2\[0\]\s*=\s*\2\[({_NAME})\s*%\s*\2\.length\]\s*;"
    rf"\s*\2\[\3(?:\s*%\s*\2\.length)?\]\s*=\s*\1"
)

_TIMESTAMP_RE = re.compile(r"(?:signatureTimestamp|sts)\s*:\s*(\d+)")

_N_FUNC_PATTERNS = [
    rf"""(?x)
    (?:\.get\("n"\)\)&&\(b=|b=String\.fromCharCode\(110\),c=a\.get\(b\)\)&&\(c=)
    (?P<nfunc>[a-zA-Z0-9$]+)(?:\[(?P<idx>\d+)\])?\([a-zA-Z0-9]\)
    """,
    r"""(?x)
    \.get\("n"\)\)\s*&&\s*\(\s*[a-zA-Z0-9$]+\s*=\s*
    (?P<nfunc>[a-zA-Z0-9$]+)(?:\[(?P<idx>\d+)\])?\(\s*[a-zA-Z0-9$]+\s*\)
    """,
]

# Distinct characters so any misplaced character shows up in verification
_PROBE_SIGNATURE = string.ascii_letters + string.digits + "-_"


def _probe_length(arg: int) -> int:
    return max(101, 2 * arg + 7)


def _classify_probe(before_len: int, out: list, arg: int) -> CipherOperation | None:
    """
    Map the probe result to a primitive. Returns None when the probe left
    the array untouched, raises UnsupportedOperationError when it did
    something no primitive explains.
    """
    identity = list(range(before_len))
    if out == identity:
        return None
    if len(out) == before_len and out == identity[::-1]:
        return CipherOperation.reverse()
    if len(out) < before_len:
        removed = before_len - len(out)
        start = next((i for i, v in enumerate(out) if v != i), len(out))
        if out == identity[:start] + identity[start + removed :]:
            return CipherOperation.splice(start, removed)
    if len(out) == before_len:
        diff = [i for i, v in enumerate(out) if v != i]
        if len(diff) == 2:
            i, j = diff
            if out[i] == j and out[j] == i:
                # The raw call argument is kept; apply() reduces it modulo the length
                if j == arg:
                    return CipherOperation.swap(i, arg)
                if i == arg:
                    return CipherOperation.swap(j, arg)
                return CipherOperation.swap(i, j)
    raise UnsupportedOperationError(
        f"Helper with argument {arg} does not behave like reverse, splice or swap"
    )


def _classify_source(method_source: str, arg: int) -> CipherOperation | None:
    if _SWAP_SRC_RE.search(method_source):
        return CipherOperation.swap(0, arg)
    if _SPLICE_SRC_RE.search(method_source) or _SLICE_SRC_RE.search(method_source):
        return CipherOperation.splice(0, arg)
    if _REVERSE_SRC_RE.search(method_source):
        return CipherOperation.reverse()
    return None


_MAX_N_GLOBALS = 32

_STRING_LITERAL_RE = re.compile(r""""(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*'""")
_IDENTIFIER_RE = re.compile(rf"(?<![\w$.])({_NAME})")
_DECLARED_RE = re.compile(rf"\b(?:var|let|const)\s+({_NAME})")
_PARAMS_RE = re.compile(rf"\b(?:function\s*(?:{_NAME})?|catch)\s*\(([^)]*)\)")

_NON_GLOBALS = frozenset(
    {
        "arguments", "break", "case", "catch", "const", "continue", "default", "delete",
        "do", "else", "false", "finally", "for", "function", "if", "in", "instanceof",
        "let", "new", "null", "of", "return", "switch", "this", "throw", "true", "try",
        "typeof", "var", "void", "while",
        "Array", "Infinity", "Math", "NaN", "String", "isNaN", "parseInt", "undefined",
    }
)


def _free_names(source: str) -> list[str]:
    """Identifiers ``source`` reads that it does not declare itself, in order of use."""
    code = _STRING_LITERAL_RE.sub('""', source)
    local = set(_DECLARED_RE.findall(code))
    for params in _PARAMS_RE.findall(code):
        local.update(p.strip() for p in params.split(",") if p.strip())
    names = []
    for name in _IDENTIFIER_RE.findall(code):
        if name not in local and name not in _NON_GLOBALS and name not in names:
            names.append(name)
    return names


def _declaration(scanner: JSInterpreter, name: str) -> str | None:
    """Source of the top-level declaration of ``name`` as a ``var`` statement."""
    try:
        return f"var {name}={scanner.extract_function_code(name)};"
    except JSInterpreterError:
        pass
    try:
        start, end = scanner.value_span(name)
    except JSInterpreterError:
        return None
    return f"var {name}={scanner.code[start:end].strip()};"


class _Candidate:
    """A transform-shaped function found in the player script."""

    def __init__(self, name: str, arg: str, calls: list[re.Match], start: int):
        self.name = name
        self.arg = arg
        self.calls = calls
        self.start = start

    @property
    def helper(self) -> str:
        return self.calls[0].group("obj")


class ScriptSandbox:
    """Runs player-script snippets in isolated, bounded interpreters."""

    def __init__(
        self,
        timeout: float | None = None,
        max_steps: int | None = None,
        workers: int | None = None,
    ):
        settings = get_settings()
        self.timeout = settings.sandbox_timeout if timeout is None else timeout
        self.max_steps = settings.sandbox_max_steps if max_steps is None else max_steps
        self._workers = workers or settings.sandbox_workers
        self._executor: ThreadPoolExecutor | None = None

    def _interpreter(self, code: str, abort_event: threading.Event | None) -> JSInterpreter:
        return JSInterpreter(
            code,
            max_steps=self.max_steps,
            abort_event=abort_event,
            deadline=time.monotonic() + self.timeout if self.timeout else None,
        )

    # ------------------------------------------------------------------
    # Candidate discovery
    # ------------------------------------------------------------------

    def find_candidates(self, script_source: str) -> list[_Candidate]:
        candidates = []
        for match in _TRANSFORM_FUNC_RE.finditer(script_source):
            body = match.group("body")
            if not body.strip() or not _HELPER_BODY_RE.fullmatch(body):
                continue
            arg = match.group("arg")
            calls = list(_HELPER_CALL_RE.finditer(body))
            if any(c.group("target") != arg for c in calls):
                continue
            if any(c.group("assign") not in (None, arg) for c in calls):
                continue
            if len({c.group("obj") for c in calls}) != 1:
                continue
            name = match.group("fname") or match.group("vname")
            candidates.append(_Candidate(name, arg, calls, match.start()))

        preferred = []
        for pattern in _CALL_SITE_PATTERNS:
            for m in re.finditer(pattern, script_source):
                if m.group("name") not in preferred:
                    preferred.append(m.group("name"))

        def rank(c: _Candidate):
            return preferred.index(c.name) if c.name in preferred else len(preferred)

        return sorted(candidates, key=lambda c: (rank(c), c.start))

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract_transform(
        self,
        script_source: str,
        player_version: str,
        abort_event: threading.Event | None = None,
    ) -> CipherProgram:
        """
        Decode the signature transform of a player script into a CipherProgram.

        Every failure, including ones raised by the script misbehaving inside
        the interpreter, surfaces as a CipherError.
        """
        try:
            return self._extract_transform(script_source, player_version, abort_event)
        except CipherError:
            raise
        except Exception as e:
            raise ExtractionFailedError(
                f"Player {player_version} could not be analysed: {type(e).__name__}: {e}",
                cause=e,
            ) from e

    def _extract_transform(
        self,
        script_source: str,
        player_version: str,
        abort_event: threading.Event | None,
    ) -> CipherProgram:
        candidates = self.find_candidates(script_source)
        if not candidates:
            raise NoMatchingFunctionError(
                f"No signature transform function found in player {player_version}"
            )

        last_error: CipherError | None = None
        for candidate in candidates:
            try:
                operations = self._decode_candidate(script_source, candidate, abort_event)
            except JSAbort as e:
                if abort_event is not None and abort_event.is_set():
                    raise ExtractionFailedError(f"Sandbox aborted: {e}", cause=e) from e
                last_error = ExtractionFailedError(f"Candidate {candidate.name}: {e}", cause=e)
            except CipherError as e:
                last_error = e
            except JSInterpreterError as e:
                last_error = NoMatchingFunctionError(f"Candidate {candidate.name}: {e}")
            except (RecursionError, ArithmeticError, ValueError, MemoryError) as e:
                last_error = ExtractionFailedError(
                    f"Candidate {candidate.name}: {type(e).__name__}: {e}", cause=e
                )
            else:
                n_function = self.extract_n_function(script_source)
                program = CipherProgram(
                    player_version=player_version,
                    operations=tuple(operations),
                    signature_timestamp=self.extract_signature_timestamp(script_source),
                    n_function=n_function,
                    n_globals=self.extract_n_globals(script_source, n_function) if n_function else None,
                )
                logger.info(
                    "Decoded signature transform %s for player %s: %s",
                    candidate.name,
                    player_version,
                    program.describe(),
                )
                return program
            logger.debug("Candidate %s rejected: %s", candidate.name, last_error)

        raise last_error or NoMatchingFunctionError(
            f"No usable signature transform in player {player_version}"
        )

    def _decode_candidate(
        self,
        script_source: str,
        candidate: _Candidate,
        abort_event: threading.Event | None,
    ) -> list[CipherOperation]:
        scanner = JSInterpreter(script_source)
        try:
            obj_start, obj_end = scanner.object_span(candidate.helper)
        except JSInterpreterError as e:
            raise NoMatchingFunctionError(
                f"Helper object {candidate.helper} of {candidate.name} not found"
            ) from e
        helper_source = f"var {candidate.helper}={script_source[obj_start:obj_end]};"

        helper_interp = self._interpreter(helper_source, abort_event)
        helper = helper_interp.extract_object(candidate.helper)

        operations = []
        classified: dict[tuple[str, int, bool], CipherOperation | None] = {}
        for call in candidate.calls:
            method_name = call.group("meth") or call.group("qmeth")
            arg = int(call.group("num"))
            if _probe_length(arg) > self.max_steps:
                raise UnsupportedOperationError(
                    f"Helper argument {arg} of {candidate.name} is out of range"
                )
            assigned = call.group("assign") is not None
            key = (method_name, arg, assigned)
            if key not in classified:
                method = helper.get(method_name)
                if not isinstance(method, JSFunction):
                    raise NoMatchingFunctionError(
                        f"{candidate.helper}.{method_name} is not a function"
                    )
                classified[key] = self._classify_method(
                    helper_source, candidate.helper, method_name, method, arg, assigned
                )
            op = classified[key]
            if op is not None:
                operations.append(op)

        function_source = scanner.extract_function_code(candidate.name)
        self._verify(
            helper_source + f"\nvar {candidate.name}={function_source};",
            candidate.name,
            operations,
            abort_event,
        )
        return operations

    def _classify_method(
        self,
        helper_source: str,
        helper_name: str,
        method_name: str,
        method: JSFunction,
        arg: int,
        assigned: bool,
    ) -> CipherOperation | None:
        length = _probe_length(arg)
        probe = list(range(length))
        try:
            result = method(probe, arg)
        except JSAbort:
            raise
        except JSInterpreterError as e:
            logger.debug("Probe of %s.%s failed: %s", helper_name, method_name, e)
            result = JS_UNDEFINED
            probe = list(range(length))

        out = result if assigned and isinstance(result, list) else probe
        op = _classify_probe(length, out, arg)
        if op is not None:
            return op

        method_source = self._method_source(helper_source, method_name)
        op = _classify_source(method_source, arg)
        if op is None:
            raise UnsupportedOperationError(
                f"Cannot classify helper {helper_name}.{method_name}"
            )
        return op

    @staticmethod
    def _method_source(helper_source: str, method_name: str) -> str:
        match = re.search(
            rf"(?:^|[{{,\s])[\"']?{re.escape(method_name)}[\"']?\s*:\s*function\s*\([^)]*\)\s*\{{(.*?)\}}",
            helper_source,
            re.DOTALL,
        )
        return match.group(1) if match else ""

    def _verify(
        self,
        source: str,
        function_name: str,
        operations: list[CipherOperation],
        abort_event: threading.Event | None,
    ):
        expected = list(_PROBE_SIGNATURE)
        for op in operations:
            op.apply_to(expected)
        try:
            actual = self._interpreter(source, abort_event).call_function(
                function_name, _PROBE_SIGNATURE
            )
        except JSAbort:
            raise
        except JSInterpreterError as e:
            logger.warning("Could not verify transform %s: %s", function_name, e)
            return
        if actual != "".join(expected):
            raise ExtractionFailedError(
                f"Decoded operations for {function_name} disagree with the interpreter"
            )

    @staticmethod
    def extract_signature_timestamp(script_source: str) -> int | None:
        match = _TIMESTAMP_RE.search(script_source)
        return int(match.group(1)) if match else None

    def extract_n_function(self, script_source: str) -> str | None:
        """Return the n-parameter transform as an anonymous function source, if found."""
        for pattern in _N_FUNC_PATTERNS:
            match = re.search(pattern, script_source)
            if not match:
                continue
            name = match.group("nfunc")
            idx = match.group("idx")
            if idx is not None:
                array = re.search(
                    rf"var\s+{re.escape(name)}\s*=\s*\[(.+?)\]\s*[,;]", script_source
                )
                if not array:
                    continue
                items = [s.strip() for s in array.group(1).split(",")]
                if int(idx) >= len(items):
                    continue
                name = items[int(idx)]
            try:
                return JSInterpreter(script_source).extract_function_code(name)
            except (JSInterpreterError, RecursionError) as e:
                logger.debug("n function %s not extractable: %s", name, e)
        return None

    def extract_n_globals(self, script_source: str, function_source: str) -> str | None:
        """
        Cut out the top-level ``var``/``function`` declarations that
        ``function_source`` reads, transitively, dependencies first.
        """
        scanner = JSInterpreter(script_source)
        declarations: list[str] = []
        seen: set[str] = set()

        def visit(source: str):
            for name in _free_names(source):
                if name in seen or len(seen) >= _MAX_N_GLOBALS:
                    continue
                seen.add(name)
                declaration = _declaration(scanner, name)
                if declaration is None:
                    continue
                visit(declaration)
                declarations.append(declaration)

        try:
            visit(function_source)
        except (JSInterpreterError, RecursionError) as e:
            logger.debug("n function globals not extractable: %s", e)
            return None
        return "\n".join(declarations) or None

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    @staticmethod
    def apply(program: CipherProgram, ciphered_signature: str, player_version: str | None) -> str:
        return program.apply(ciphered_signature, player_version)

    def transform_n(
        self,
        program: CipherProgram,
        n: str,
        abort_event: threading.Event | None = None,
    ) -> str:
        """Run the program's n function on ``n``."""
        if not program.n_function:
            raise ExtractionFailedError(f"Player {program.player_version} has no n function")
        interpreter = self._interpreter(program.n_globals or "", abort_event)
        try:
            if program.n_globals:
                interpreter.run(program.n_globals)
            result = interpreter.build_function(program.n_function)(n)
        except JSInterpreterError as e:
            raise ExtractionFailedError(f"n transform failed: {e}", cause=e) from e
        except (RecursionError, ArithmeticError, ValueError, MemoryError) as e:
            raise ExtractionFailedError(
                f"n transform failed: {type(e).__name__}: {e}", cause=e
            ) from e
        if not isinstance(result, str) or result.startswith("enhanced_except") or result.endswith(n):
            raise ExtractionFailedError(f"n transform returned an unusable value for {n!r}")
        return result

    # ------------------------------------------------------------------
    # Off-loop execution
    # ------------------------------------------------------------------

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._workers, thread_name_prefix="yinfo-sandbox"
            )
        return self._executor

    async def _run(self, func, *args: Any):
        abort_event = threading.Event()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            self._get_executor(), functools.partial(func, *args, abort_event=abort_event)
        )
        try:
            return await asyncio.wait_for(future, timeout=self.timeout or None)
        except asyncio.TimeoutError as e:
            abort_event.set()
            raise ExtractionFailedError(f"Sandbox timed out after {self.timeout}s", cause=e) from e
        except asyncio.CancelledError:
            abort_event.set()
            raise

    async def extract_transform_async(self, script_source: str, player_version: str) -> CipherProgram:
        return await self._run(self.extract_transform, script_source, player_version)

    async def transform_n_async(self, program: CipherProgram, n: str) -> str:
        return await self._run(self.transform_n, program, n)

    def shutdown(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
