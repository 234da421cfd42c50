"""Argument parser that reports problems as UsageError instead of exiting."""

import argparse

from lobster.exceptions import UsageError


class CliArgumentParser(argparse.ArgumentParser):
    """ArgumentParser whose errors are raised, so callers decide how to report them."""

    def error(self, message):
        raise UsageError(message)
