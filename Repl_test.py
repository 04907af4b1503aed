# Repl_test.py
import io
import os
import shutil
import tempfile
import unittest
from unittest import mock

import Repl
import argparser
from external_runner import DEFAULT_OPTIONS


def make_session(options=DEFAULT_OPTIONS):
    return Repl.Session(options, stdout=io.BytesIO(), stderr=io.BytesIO(),
                        console=io.StringIO(), errors=io.StringIO())


class TestTokenizing(unittest.TestCase):
    def test_single_command(self):
        self.assertEqual(Repl.tokenize_pipeline("ls -la"), [["ls", "-la"]])

    def test_pipes_with_and_without_spaces(self):
        self.assertEqual(Repl.tokenize_pipeline("cat f | sort|uniq -c"),
                         [["cat", "f"], ["sort"], ["uniq", "-c"]])

    def test_quoting(self):
        self.assertEqual(Repl.tokenize_pipeline("echo 'a  b' \"$HOME\" *"),
                         [["echo", "a  b", "$HOME", "*"]])

    def test_empty_stage(self):
        with self.assertRaises(ValueError):
            Repl.tokenize_pipeline("ls | | wc")
        with self.assertRaises(ValueError):
            Repl.tokenize_pipeline("ls |")

    def test_unclosed_quote(self):
        with self.assertRaises(ValueError):
            Repl.tokenize_pipeline("echo 'oops")

    def test_split_stages(self):
        self.assertEqual(argparser.split_stages(["a", "|", "b", "c"]), [["a"], ["b", "c"]])


class TestProcessLine(unittest.TestCase):
    def test_pipeline_output_is_streamed(self):
        session = make_session()
        status = Repl.process_line("printf 'b\\na\\n' | sort", session)
        self.assertEqual(status, 0)
        self.assertEqual(session.stdout.getvalue(), b"a\nb\n")

    def test_failure_is_reported_not_raised(self):
        session = make_session()
        status = Repl.process_line("sh -c 'exit 3'", session)
        self.assertEqual(status, 3)
        self.assertEqual(session.last_status, 3)
        self.assertIn("failed with status 3", session.errors.getvalue())

    def test_missing_program(self):
        session = make_session()
        self.assertEqual(Repl.process_line("__no_such_program__", session), 127)
        self.assertIn(b"__no_such_program__", session.stderr.getvalue())

    def test_no_shell_expansion(self):
        session = make_session()
        Repl.process_line("echo $HOME '*'", session)
        self.assertEqual(session.stdout.getvalue(), b"$HOME *\n")

    def test_blank_and_comment_lines(self):
        session = make_session()
        session.last_status = 5
        self.assertEqual(Repl.process_line("   ", session), 5)
        self.assertEqual(Repl.process_line("# comment", session), 5)

    def test_parse_error(self):
        session = make_session()
        self.assertEqual(Repl.process_line("ls | | wc", session), 2)
        self.assertIn("parse error", session.errors.getvalue())

    def test_timeout(self):
        session = make_session(DEFAULT_OPTIONS.merged(timeout=0.2))
        self.assertEqual(Repl.process_line("sleep 30", session), Repl.TIMEOUT_STATUS)
        self.assertIn("timed out", session.errors.getvalue())


class TestBuiltins(unittest.TestCase):
    def test_export_and_unset(self):
        session = make_session()
        Repl.process_line("export SAFEPIPE_A=1 SAFEPIPE_B=two", session)
        self.assertEqual(session.options.env, {"SAFEPIPE_A": "1", "SAFEPIPE_B": "two"})
        Repl.process_line("sh -c 'printf %s \"$SAFEPIPE_B\"'", session)
        self.assertEqual(session.stdout.getvalue(), b"two")
        Repl.process_line("unset SAFEPIPE_B", session)
        self.assertEqual(session.options.env, {"SAFEPIPE_A": "1", "SAFEPIPE_B": None})
        self.assertNotIn("SAFEPIPE_A", os.environ)

    def test_allow(self):
        session = make_session()
        Repl.process_line("allow 1 2", session)
        self.assertEqual(session.options.allowed_exitstatus, frozenset({1, 2}))
        self.assertEqual(Repl.process_line("false", session), 1)
        self.assertEqual(session.errors.getvalue(), "")
        Repl.process_line("allow", session)
        self.assertIsNone(session.options.allowed_exitstatus)

    def test_timeout_builtin(self):
        session = make_session()
        Repl.process_line("timeout 2.5", session)
        self.assertEqual(session.options.timeout, 2.5)
        Repl.process_line("timeout off", session)
        self.assertIsNone(session.options.timeout)
        self.assertEqual(Repl.process_line("timeout soon", session), 1)

    def test_options(self):
        session = make_session()
        Repl.process_line("export A=1", session)
        Repl.process_line("allow 3", session)
        Repl.process_line("options", session)
        self.assertEqual(session.console.getvalue(), "env A=1\nallow 3\n")

    def test_cd_and_pwd(self):
        tmp_dir = os.path.realpath(tempfile.mkdtemp(prefix="safepipe_cd_"))
        cwd = os.getcwd()
        session = make_session()
        try:
            self.assertEqual(Repl.process_line(f"cd {tmp_dir}", session), 0)
            Repl.process_line("pwd", session)
            self.assertEqual(session.console.getvalue(), tmp_dir + "\n")
            Repl.process_line("pwd | cat", session)
            self.assertEqual(session.stdout.getvalue(), (tmp_dir + "\n").encode())
        finally:
            os.chdir(cwd)
            shutil.rmtree(tmp_dir)

    def test_cd_missing(self):
        session = make_session()
        self.assertEqual(Repl.process_line("cd /definitely-not-real-xyz", session), 1)
        self.assertIn("No such file or directory", session.errors.getvalue())

    def test_exit(self):
        session = make_session()
        with self.assertRaises(SystemExit) as cm:
            Repl.process_line("exit 4", session)
        self.assertEqual(cm.exception.code, 4)

    def test_bad_builtin_arguments(self):
        session = make_session()
        with mock.patch("sys.stderr", io.StringIO()):
            self.assertEqual(Repl.process_line("exit now", session), 2)


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp(prefix="safepipe_cli_")

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def test_options_from_args(self):
        args = argparser.build_parser().parse_args(
            ["--env", "A=1", "--unset", "B", "--allow-status", "3", "--timeout", "5", "true"])
        options = Repl.options_from_args(args)
        self.assertEqual(options.env, {"A": "1", "B": None})
        self.assertEqual(options.allowed_exitstatus, frozenset({3}))
        self.assertEqual(options.timeout, 5.0)
        self.assertIsNone(options.logger)
        self.assertEqual(args.command, ["true"])

    def test_bad_assignment(self):
        with mock.patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit):
                argparser.build_parser().parse_args(["--env", "novalue", "true"])

    def test_run_once_with_stdin_file(self):
        path = os.path.join(self.tmp_dir, "input")
        with open(path, "wb") as f:
            f.write(b"c\na\nb\n")
        args = argparser.build_parser().parse_args(["--stdin", path, "sort", "|", "head", "-n", "2"])
        session = make_session(Repl.options_from_args(args))
        self.assertEqual(Repl.run_once(args, session), 0)
        self.assertEqual(session.stdout.getvalue(), b"a\nb\n")

    def test_run_once_status(self):
        args = argparser.build_parser().parse_args(["sh", "-c", "exit 3"])
        session = make_session(Repl.options_from_args(args))
        self.assertEqual(Repl.run_once(args, session), 3)

    def test_script_mode(self):
        path = os.path.join(self.tmp_dir, "script")
        with open(path, "w") as f:
            f.write("# comment\nexport GREETING=hi\nsh -c 'echo $GREETING' | tr a-z A-Z\n")
        session = make_session()
        self.assertEqual(Repl.run_script(path, session), 0)
        self.assertEqual(session.stdout.getvalue(), b"HI\n")

    def test_missing_script(self):
        session = make_session()
        self.assertEqual(Repl.run_script(os.path.join(self.tmp_dir, "nope"), session), 1)

    def test_shell_status(self):
        self.assertEqual(Repl.shell_status(0), 0)
        self.assertEqual(Repl.shell_status(3), 3)
        self.assertEqual(Repl.shell_status(-9), 137)


if __name__ == "__main__":
    unittest.main(verbosity=2)
