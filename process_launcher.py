# process_launcher.py - what a freshly forked stage does before it becomes the target program
"""Child-side half of spawning one pipeline stage.

Everything here runs between ``os.fork()`` and ``os.exec*()`` in the child.
Nothing may return to the caller's code: the child either becomes the
target program or leaves through ``os._exit(NOT_FOUND)``.
"""
import fcntl
import os
import signal

NOT_FOUND = 127

_FD_DIRS = ("/proc/self/fd", "/dev/fd")
_DEFAULT_SIGNALS = ("SIGPIPE", "SIGXFZ", "SIGXFSZ")


def child_environment(overrides=None):
    """Environment for a spawned stage: ours plus overrides, ``None`` unsets."""
    env = dict(os.environ)
    for name, value in (overrides or {}).items():
        if value is None:
            env.pop(name, None)
        else:
            env[name] = os.fspath(value) if not isinstance(value, str) else value
    return env


def bind_standard_streams(stdin_fd, stdout_fd, stderr_fd):
    sources = [stdin_fd, stdout_fd, stderr_fd]
    # move anything sitting on 0-2 out of the way so dup2 cannot clobber it
    for i, fd in enumerate(sources):
        if fd < 3 and fd != i:
            sources[i] = fcntl.fcntl(fd, fcntl.F_DUPFD, 3)
    for target, fd in enumerate(sources):
        if fd != target:
            os.dup2(fd, target, inheritable=True)
        else:
            os.set_inheritable(fd, True)
    for fd in set(sources + [stdin_fd, stdout_fd, stderr_fd]):
        if fd > 2:
            os.close(fd)


def restore_signals():
    # the interpreter ignores SIGPIPE; an ignored disposition survives exec
    for name in _DEFAULT_SIGNALS:
        sig = getattr(signal, name, None)
        if sig is not None:
            signal.signal(sig, signal.SIG_DFL)


def change_root(path):
    os.chroot(path)
    os.chdir("/")


def _open_fds():
    for fd_dir in _FD_DIRS:
        try:
            names = os.listdir(fd_dir)
        except OSError:
            continue
        return [int(name) for name in names if name.isdigit()]
    return None


def close_inherited_fds():
    """Best effort: close every descriptor >= 3."""
    fds = _open_fds()
    if fds is None:
        try:
            max_fd = os.sysconf("SC_OPEN_MAX")
        except (ValueError, OSError):
            return
        os.closerange(3, max_fd)
        return
    for fd in fds:
        if fd > 2:
            try:
                os.close(fd)
            except OSError:
                pass


def exec_stage(argv, stdin_fd, stdout_fd, stderr_fd, chroot="/", env=None, pgid=0):
    """Turn the current (forked) process into ``argv``. Never returns."""
    try:
        try:
            os.setpgid(0, pgid)
        except OSError:
            # the group leader may already be gone; stay in the parent's group
            pass
        bind_standard_streams(stdin_fd, stdout_fd, stderr_fd)
        restore_signals()
        if chroot and chroot != "/":
            change_root(chroot)
        close_inherited_fds()
        os.execvpe(argv[0], argv, child_environment(env))
    except OSError as e:
        try:
            os.write(2, f"{argv[0]}: {e.strerror or e}\n".encode("utf-8", "surrogateescape"))
        except OSError:
            pass
    finally:
        os._exit(NOT_FOUND)
