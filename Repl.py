#!/usr/bin/env python3
# Repl.py - command-line front end: one-shot pipelines, script mode, interactive session
import glob
import logging
import os
import shlex
import signal
import sys

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory

import argparser
from endpoints import External
from errors import ExecutionFailed, ExecutionTimedOut, SafepipeError
from external_runner import DEFAULT_OPTIONS, run


HISTORY_FILE = os.path.join(os.path.expanduser("~"), ".safepipe_history")
TIMEOUT_STATUS = 124

# Builtins list (keep in sync with argparser.build_builtin_parser)
_BUILTINS = {"cd", "pwd", "export", "unset", "allow", "timeout", "options", "exit"}

builtin_parser = argparser.build_builtin_parser()


def prompt():
    return f"safepipe:{os.getcwd()}> "


class Session:
    """State of one interactive session or script run.

    ``stdout``/``stderr`` receive the programs' output (binary handles);
    ``console``/``errors`` are text streams for builtins and messages.
    """

    def __init__(self, options=DEFAULT_OPTIONS, stdout=None, stderr=None, console=None, errors=None):
        self.options = options
        self.stdout = stdout if stdout is not None else sys.stdout.buffer
        self.stderr = stderr if stderr is not None else sys.stderr.buffer
        self.console = console if console is not None else sys.stdout
        self.errors = errors if errors is not None else sys.stderr
        self.last_status = 0


class ShellCompleter(Completer):
    def __init__(self, builtins: set):
        self.builtins = builtins

    def get_completions(self, document, complete_event):
        word_before_cursor = document.get_word_before_cursor(WORD=True)
        word_len = len(word_before_cursor)

        # builtins only make sense as the first word
        if document.text_before_cursor.strip() == word_before_cursor:
            for name in sorted(self.builtins):
                if name.startswith(word_before_cursor):
                    yield Completion(name, -word_len)

        if word_before_cursor:
            for path in sorted(glob.glob(glob.escape(word_before_cursor) + "*")):
                display = path + os.sep if os.path.isdir(path) else path
                yield Completion(display, -word_len)


# -----------------------
# Utilities
# -----------------------
def tokenize_pipeline(line: str):
    """Split a line into pipeline stages. Only quoting and '|' are understood.

    shlex drops the quotes before we see the tokens, so a quoted lone '|'
    still separates stages.
    """
    lexer = shlex.shlex(line, posix=True, punctuation_chars="|")
    lexer.whitespace_split = True
    lexer.commenters = ""
    return argparser.split_stages(list(lexer))


def shell_status(status):
    # what a shell would report: 128+N for a signal
    return 128 - status if status < 0 else status


def options_from_args(args, options=DEFAULT_OPTIONS):
    env = dict(args.env)
    env.update((name, None) for name in args.unset)
    return options.merged(
        env=env,
        chroot=args.chroot,
        allowed_exitstatus=frozenset(args.allow_status) if args.allow_status else None,
        timeout=args.timeout,
        logger=logging.getLogger("safepipe") if args.verbose else None,
    )


# -----------------------
# Pipeline executor
# -----------------------
def execute_pipeline(stages, session):
    """Run ``stages`` with the session's options, streaming to its handles.

    Returns a shell-style exit status; failures are reported on
    ``session.errors`` instead of raised.
    """
    options = session.options.merged(stdout=External(session.stdout), stderr=External(session.stderr))
    session.console.flush()
    try:
        status = run(*stages, options=options)
    except ExecutionFailed as e:
        print(e, file=session.errors)
        return shell_status(e.returncode)
    except ExecutionTimedOut as e:
        print(e, file=session.errors)
        return TIMEOUT_STATUS
    except KeyboardInterrupt:
        print(file=session.errors)
        return 128 + signal.SIGINT
    except SafepipeError as e:
        print(f"safepipe: {e}", file=session.errors)
        return 1
    return shell_status(status) if status is not None else 0


def run_builtin(argv, session):
    try:
        args = builtin_parser.parse_args(argv)
    except SystemExit:
        return 2
    return args.func(args, session)


# -----------------------
# Line processor
# -----------------------
def process_line(line: str, session):
    if not line or not line.strip() or line.lstrip().startswith("#"):
        return session.last_status
    try:
        stages = tokenize_pipeline(line)
    except ValueError as e:
        print(f"parse error: {e}", file=session.errors)
        session.last_status = 2
        return session.last_status

    if len(stages) == 1 and stages[0][0] in _BUILTINS:
        session.last_status = run_builtin(stages[0], session)
    else:
        session.last_status = execute_pipeline(stages, session)
    return session.last_status


# -----------------------
# Script mode runner
# -----------------------
def run_script(path: str, session):
    if not os.path.exists(path):
        print(f"Script not found: {path}", file=session.errors)
        return 1
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            process_line(line.rstrip("\n"), session)
    return session.last_status


def run_once(args, session):
    stages = argparser.split_stages(args.command)
    if args.stdin == "-":
        session.options = session.options.merged(stdin=External(sys.stdin.buffer))
        return execute_pipeline(stages, session)
    if args.stdin:
        with open(args.stdin, "rb") as f:
            session.options = session.options.merged(stdin=External(f))
            return execute_pipeline(stages, session)
    return execute_pipeline(stages, session)


def interact(session):
    prompt_session = PromptSession(history=FileHistory(HISTORY_FILE),
                                   completer=ShellCompleter(_BUILTINS))
    while True:
        try:
            line = prompt_session.prompt(prompt())
        except KeyboardInterrupt:
            continue
        except EOFError:
            print("\nExiting shell.", file=session.console)
            break
        process_line(line, session)
    return session.last_status


# -----------------------
# Main
# -----------------------
def main(argv=None):
    parser = argparser.build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(name)s: %(message)s")

    session = Session(options_from_args(args))
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if args.script:
        return run_script(args.script, session)
    if args.command:
        try:
            return run_once(args, session)
        except ValueError as e:
            parser.error(str(e))
    return interact(session)


if __name__ == "__main__":
    sys.exit(main())
