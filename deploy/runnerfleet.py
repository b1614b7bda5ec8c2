#!/usr/bin/env python3
""" Provision or tear down a fleet of self-hosted GitHub Actions runners on this host. """

from __future__ import annotations

import argparse
import inspect
import logging
import os
import random
import string
import sys
from pathlib import Path
from time import strftime, gmtime

import colorama # type: ignore
from colorama import Fore, Style # type: ignore

from fleettools.errors import RunnerFleetError
from fleettools.fleet_config import FleetConfigFile
from fleettools.fleet_lifecycle import init_fleet, destroy_fleet

from typing import Callable, Dict, List, Optional, TypedDict, get_type_hints

CONFIG_ENV_VAR = "RUNNERFLEET_CONFIG"
LOG_DIR_ENV_VAR = "RUNNERFLEET_LOG_DIR"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config_fleet.yaml"

rootLogger = logging.getLogger()

class RunnerFleetTaskAccessViolation(Exception):
    """ Raised when a registered task is called directly instead of through main(). """

class Task(TypedDict):
    task: Callable
    config: Optional[Callable]

TASKS: Dict[str, Task] = {}

def register_task(task: Callable) -> Callable:
    """Decorator adding `task` to TASKS under its own name.

    If the task takes a parameter, its first parameter must be annotated with a
    class whose constructor takes the argparse.Namespace; main() builds that
    object from the parsed args and passes it in.

    The decorated name is replaced by a function that raises
    RunnerFleetTaskAccessViolation, tasks only run through main().
    """
    tn = task.__name__
    if tn in TASKS:
        raise KeyError(f"Task '{tn}' already registered by {TASKS[tn]['task']}")

    config_class = None
    params = list(inspect.signature(task).parameters.values())
    if params:
        hints = get_type_hints(task)
        if params[0].name not in hints:
            raise TypeError(f"Task '{tn}' requires type annotation on first parameter")
        config_class = hints[params[0].name]

        xtor_params = list(inspect.signature(config_class.__init__).parameters.values())[1:]
        if not xtor_params:
            raise TypeError(f"{config_class.__name__} constructor takes no param, it can't be built for task '{tn}'")
        xtor_hints = get_type_hints(config_class.__init__)
        if xtor_params[0].name not in xtor_hints:
            raise TypeError(f"{config_class.__name__} needs type annotation on constructor's first parameter")
        assert xtor_hints[xtor_params[0].name] is argparse.Namespace, \
            f"{config_class.__name__} constructor must take an argparse.Namespace"

    TASKS[tn] = {'task': task, 'config': config_class}

    def guard(*args, **kwargs):
        raise RunnerFleetTaskAccessViolation(f"Task '{tn}' must be run through runnerfleet.main()")
    guard.__name__ = tn
    guard.__doc__ = task.__doc__
    return guard

@register_task
def init(config: FleetConfigFile) -> None:
    """ Register and start every runner of the fleet. """
    init_fleet(config.fleet, config.token_broker, config.agent, config.service_manager, config.credentials)

@register_task
def destroy(config: FleetConfigFile) -> None:
    """ Stop, deregister and delete every runner of the fleet. """
    destroy_fleet(config.fleet, config.agent, config.service_manager, config.token_broker)

class FleetArgumentParser(argparse.ArgumentParser):
    """ ArgumentParser that exits with status 1 on bad arguments. """

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")

def construct_runnerfleet_argparser() -> argparse.ArgumentParser:
    parser = FleetArgumentParser(prog='runnerfleet', description=__doc__)
    parser.add_argument('task', type=str,
                        help='Management task to run.', choices=list(TASKS.keys()))
    # the config file is not a flag, only the environment can move it
    parser.set_defaults(fleetconfigfile=os.environ.get(CONFIG_ENV_VAR, str(DEFAULT_CONFIG_PATH)))
    return parser

def main(args: argparse.Namespace) -> None:
    """ Dispatch the task selected in `args`. """
    t = TASKS[args.task]
    if t['config']:
        t['task'](t['config'](args))
    else:
        t['task']()

class ConsoleFormatter(logging.Formatter):
    """ Plain INFO messages, everything else prefixed with a colored level name. """
    LEVEL_COLORS = {
        logging.DEBUG: Style.DIM,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def format(self, record):
        if record.levelno == logging.INFO:
            self._style._fmt = "%(message)s"
        else:
            color = self.LEVEL_COLORS.get(record.levelno, "")
            self._style._fmt = color + "%(levelname)s: %(message)s" + Style.RESET_ALL
        return super().format(record)

def setup_logging(task: str) -> Path:
    """Attach the console and log file handlers to the root logger.

    Returns:
        Path of the log file of this run.
    """
    colorama.just_fix_windows_console()

    rootLogger.setLevel(logging.NOTSET) # capture everything

    log_dir = Path(os.environ.get(LOG_DIR_ENV_VAR, "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    rand = ''.join(random.choice(string.ascii_uppercase + string.digits) for _ in range(16))
    logfile = log_dir / f"{strftime('%Y-%m-%d--%H-%M-%S', gmtime())}-{task}-{rand}.log"

    fileHandler = logging.FileHandler(str(logfile))
    fileHandler.setFormatter(logging.Formatter("%(asctime)s [%(funcName)-12.12s] [%(levelname)-5.5s]  %(message)s"))
    fileHandler.setLevel(logging.NOTSET) # log everything to file
    rootLogger.addHandler(fileHandler)

    consoleHandler = logging.StreamHandler(stream=sys.stdout)
    consoleHandler.setFormatter(ConsoleFormatter())
    consoleHandler.setLevel(logging.INFO) # show only INFO and greater in console
    rootLogger.addHandler(consoleHandler)

    return logfile

def cli(argv: Optional[List[str]] = None) -> int:
    """Entry point: parse, set up logging, run the task.

    Returns:
        0 when the task completed (even with failed units), 1 on a fatal error.
        Bad arguments exit with 1 from the parser before anything else happens.
    """
    args = construct_runnerfleet_argparser().parse_args(argv)
    logfile = setup_logging(args.task)

    exitcode = 0
    try:
        main(args)
    except RunnerFleetError as e:
        rootLogger.debug("Fatal error.", exc_info=True)
        rootLogger.critical(f"Fatal error: {e}")
        exitcode = 1
    except Exception:
        rootLogger.exception("Fatal error.")
        exitcode = 1
    finally:
        rootLogger.info(f"The full log of this run is:\n{logfile}")

    return exitcode

if __name__ == '__main__':
    sys.exit(cli())
