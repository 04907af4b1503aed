# Interrupt.py - stopping a running pipeline (Ctrl-C forwarding and timeouts)

import contextlib
import logging
import signal
import time

logger = logging.getLogger(__name__)

KILL_GRACE = 0.5


def signal_pipeline(stages, sig):
    """Send ``sig`` to the whole process group of the pipeline."""
    logger.debug("sending %s to process group %s", signal.Signals(sig).name, stages.pgid)
    stages.signal_all(sig)


def kill_pipeline(stages, sig=signal.SIGTERM, grace=KILL_GRACE):
    """Ask every stage to stop, SIGKILL whatever is left after ``grace``, reap all."""
    if stages.running():
        signal_pipeline(stages, sig)
        deadline = time.monotonic() + grace
        while stages.running() and time.monotonic() < deadline:
            time.sleep(0.01)
        if stages.running():
            signal_pipeline(stages, signal.SIGKILL)
    stages.reap_all()


@contextlib.contextmanager
def forward_interrupts(stages):
    """Pass Ctrl-C on to the pipeline instead of abandoning its processes.

    The stages live in their own process group, so the terminal's SIGINT
    only reaches us. We forward it, wait for the stages and re-raise.
    """
    try:
        yield
    except KeyboardInterrupt:
        logger.debug("interrupted; forwarding SIGINT to the pipeline")
        kill_pipeline(stages, signal.SIGINT)
        raise
