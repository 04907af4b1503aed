#!/usr/bin/env python3
# commands.py - builtins of the interactive session
#
# Each builtin gets the argparse namespace and the Session. Builtins that
# change how pipelines run replace session.options with a new RunOptions;
# nothing here touches process-wide state except the working directory.

import os
import sys


def change_directory(args, session):
    path = args.path or os.path.expanduser("~")
    try:
        os.chdir(path)
    except FileNotFoundError:
        print(f"cd: {path}: No such file or directory", file=session.errors)
        return 1
    except NotADirectoryError:
        print(f"cd: {path}: Not a directory", file=session.errors)
        return 1
    except PermissionError:
        print(f"cd: {path}: Permission denied", file=session.errors)
        return 1
    return 0


def print_working_directory(args, session):
    print(os.getcwd(), file=session.console)
    return 0


def export_var(args, session):
    env = dict(session.options.env)
    env.update(args.assignment)
    session.options = session.options.merged(env=env)
    return 0


def unset_var(args, session):
    env = dict(session.options.env)
    for name in args.name:
        # None removes the variable from the programs' environment
        env[name] = None
    session.options = session.options.merged(env=env)
    return 0


def allow_status(args, session):
    allowed = frozenset(args.status) if args.status else None
    session.options = session.options.merged(allowed_exitstatus=allowed)
    return 0


def set_timeout(args, session):
    if args.seconds == "off":
        timeout = None
    else:
        try:
            timeout = float(args.seconds)
        except ValueError:
            print(f"timeout: invalid number of seconds: {args.seconds}", file=session.errors)
            return 1
        if timeout <= 0:
            print("timeout: must be positive", file=session.errors)
            return 1
    session.options = session.options.merged(timeout=timeout)
    return 0


def show_options(args, session):
    opts = session.options
    for name, value in sorted(opts.env.items()):
        print(f"env {name}={'(unset)' if value is None else value}", file=session.console)
    if opts.chroot != "/":
        print(f"chroot {opts.chroot}", file=session.console)
    if opts.allowed_exitstatus is not None:
        print(f"allow {' '.join(str(s) for s in sorted(opts.allowed_exitstatus))}", file=session.console)
    if opts.timeout is not None:
        print(f"timeout {opts.timeout:g}", file=session.console)
    return 0


def exit_shell(args, session):
    sys.exit(args.code)
