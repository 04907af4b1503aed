# argparser.py
import argparse

import commands

PIPE = "|"


def _assignment(text):
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    return name, value


def _timeout(text):
    value = float(text)
    if value <= 0:
        raise argparse.ArgumentTypeError("timeout must be positive")
    return value


def build_parser():
    parser = argparse.ArgumentParser(
        prog="safepipe",
        description="Run a pipeline of programs without a shell. "
                    "Separate stages with a quoted '|'. With no command, start an interactive session.",
    )
    parser.add_argument("--stdin", metavar="FILE",
                        help="feed FILE to the first stage ('-' for our own stdin); default: no input")
    parser.add_argument("--env", action="append", type=_assignment, default=[], metavar="NAME=VALUE",
                        help="set an environment variable for the spawned programs")
    parser.add_argument("--unset", action="append", default=[], metavar="NAME",
                        help="remove an environment variable for the spawned programs")
    parser.add_argument("--chroot", default="/", metavar="DIR",
                        help="change the root directory of every spawned program")
    parser.add_argument("--allow-status", action="append", type=int, default=[], metavar="N",
                        help="treat exit status N of the last stage as success")
    parser.add_argument("--timeout", type=_timeout, metavar="SECONDS",
                        help="kill the pipeline after SECONDS")
    parser.add_argument("--script", metavar="FILE",
                        help="run the pipelines listed in FILE, one per line")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="log the execution (-vv for engine internals)")
    parser.add_argument("command", nargs=argparse.REMAINDER,
                        help="program and arguments, stages separated by '|'")
    return parser


def build_builtin_parser():
    """Parser for the builtins of an interactive session."""
    parser = argparse.ArgumentParser(prog="safepipe", add_help=False)
    subs = parser.add_subparsers(dest="command")

    cd = subs.add_parser("cd", add_help=False)
    cd.add_argument("path", nargs="?")
    cd.set_defaults(func=commands.change_directory)

    subs.add_parser("pwd", add_help=False).set_defaults(func=commands.print_working_directory)

    export = subs.add_parser("export", add_help=False)
    export.add_argument("assignment", type=_assignment, nargs="+")
    export.set_defaults(func=commands.export_var)

    unset = subs.add_parser("unset", add_help=False)
    unset.add_argument("name", nargs="+")
    unset.set_defaults(func=commands.unset_var)

    allow = subs.add_parser("allow", add_help=False)
    allow.add_argument("status", nargs="*", type=int)
    allow.set_defaults(func=commands.allow_status)

    timeout = subs.add_parser("timeout", add_help=False)
    timeout.add_argument("seconds", help="seconds, or 'off'")
    timeout.set_defaults(func=commands.set_timeout)

    subs.add_parser("options", add_help=False).set_defaults(func=commands.show_options)

    exit_ = subs.add_parser("exit", add_help=False)
    exit_.add_argument("code", nargs="?", type=int, default=0)
    exit_.set_defaults(func=commands.exit_shell)

    return parser


def split_stages(tokens):
    """``["ls", "|", "wc", "-l"]`` -> ``[["ls"], ["wc", "-l"]]``."""
    stages = [[]]
    for token in tokens:
        if token == PIPE:
            stages.append([])
        else:
            stages[-1].append(token)
    if any(not stage for stage in stages):
        raise ValueError("syntax error near unexpected token `|'")
    return stages
