# pipeline_builder.py - spawn one process per command and wire them together with pipes
"""Pipeline construction.

For ``n`` commands we create the three pipes the caller talks to (stdin,
stdout, stderr) plus ``n - 1`` private links between neighbouring stages,
then fork the stages in order. Each stage gets:

    stdin   the caller's stdin pipe (first stage) or the previous link
    stdout  the next link, or the caller's stdout pipe (last stage)
    stderr  the one shared stderr pipe

A pipe end is closed in the parent as soon as the fork that needed it is
done. A leftover write end would keep EOF from ever reaching the relay.
"""
import logging
import os
import signal

import process_launcher
from process_subsystem import StageTable

logger = logging.getLogger(__name__)


class Pipeline:
    """The parent's view of a running pipeline."""

    def __init__(self, commands, stdin_fd, stdout_fd, stderr_fd, stages):
        self.commands = commands
        self.stdin_fd = stdin_fd
        self.stdout_fd = stdout_fd
        self.stderr_fd = stderr_fd
        self.stages = stages

    def close(self):
        for name in ("stdin_fd", "stdout_fd", "stderr_fd"):
            fd = getattr(self, name)
            if fd is not None:
                setattr(self, name, None)
                os.close(fd)


class _Fds:
    """Parent-side descriptors that are still open while building."""

    def __init__(self):
        self.open = set()

    def pipe(self):
        r, w = os.pipe()
        self.open.update((r, w))
        return r, w

    def close(self, fd):
        if fd in self.open:
            self.open.discard(fd)
            os.close(fd)

    def close_all(self):
        for fd in list(self.open):
            self.close(fd)


def _spawn(argv, stdin_fd, stdout_fd, stderr_fd, chroot, env, pgid):
    pid = os.fork()
    if pid == 0:
        process_launcher.exec_stage(argv, stdin_fd, stdout_fd, stderr_fd,
                                    chroot=chroot, env=env, pgid=pgid or 0)
    try:
        # also done in the child; whichever runs first wins the race
        os.setpgid(pid, pgid or pid)
    except OSError:
        pass
    return pid


def build_pipeline(commands, chroot="/", env=None):
    if not commands:
        raise ValueError("a pipeline needs at least one command")

    fds = _Fds()
    stages = StageTable()
    try:
        stdin_r, stdin_w = fds.pipe()
        stdout_r, stdout_w = fds.pipe()
        stderr_r, stderr_w = fds.pipe()
        links = [fds.pipe() for _ in commands[1:]]

        last = len(commands) - 1
        for i, argv in enumerate(commands):
            in_fd = stdin_r if i == 0 else links[i - 1][0]
            out_fd = stdout_w if i == last else links[i][1]
            pid = _spawn(argv, in_fd, out_fd, stderr_w, chroot, env, stages.pgid)
            stages.register(argv, pid)
            fds.close(in_fd)
            fds.close(out_fd)
        fds.close(stderr_w)
    except BaseException:
        fds.close_all()
        stages.signal_all(signal.SIGKILL)
        stages.reap_all()
        raise

    logger.debug("pipeline of %d stage(s) started, process group %s", len(stages), stages.pgid)
    return Pipeline(commands, stdin_w, stdout_r, stderr_r, stages)
