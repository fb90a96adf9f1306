"""Test run orchestration.

The orchestrator loads configuration files, parses command-line arguments
into filters and options, asks the selected collector for a suite and hands
that suite to the selected runner.
"""

import contextlib
import logging
import os
import re
import sys
import unittest
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import click
from click.core import ParameterSource
from rich.console import Console
from rich.markup import escape

from testharness import __version__
from testharness.config import (
    CONFIG_FILE,
    PLAIN_TEXT_CONFIG_FILE,
    HarnessSettings,
    global_config_path,
    load_plain_text_config,
    load_structured_config,
)
from testharness.core.executor import (
    GCStressListener,
    SequentialSuiteRunner,
    StopOnFailureListener,
    ThreadSuiteRunner,
)
from testharness.core.filters import (
    AttributeFilter,
    FilterChain,
    LocationFilter,
    NameFilter,
    PriorityFilter,
    TestCaseFilter,
    parse_location,
    prepare_name,
)
from testharness.core.models import AVAILABLE_ORDERS, TestIdentity, TestSuite
from testharness.core.registry import (
    COLLECTORS,
    OPTION_BUILDERS,
    PREPARE_HOOKS,
    RUNNERS,
    StrategyRegistry,
)
from testharness.errors import ConfigParseError, DiscoveryFailure, UnresolvedStrategyError
from testharness.priority.checker import PRIORITY_LEVELS, PriorityChecker, PriorityResultListener
from testharness.report.colors import ColorScheme
from testharness.storage.history import OutcomeHistory

# Importing these registers the built-in collectors and runners.
import testharness.core.discovery  # noqa: E402,F401
import testharness.report  # noqa: E402,F401

logger = logging.getLogger(__name__)

console = Console()

PARALLEL_STRATEGIES = {
    "thread": ThreadSuiteRunner,
}

# Process-scoped defaults used when no settings are given explicitly.
SETTINGS = HarnessSettings()


class RunState(str, Enum):
    """Lifecycle of one orchestrated run."""

    CONSTRUCTED = "constructed"
    CONFIGURED = "configured"
    DISCOVERING = "discovering"
    EMPTY = "empty"
    DISPATCHING = "dispatching"
    DONE = "done"


class UsageRequested(Exception):
    """Raised when help or version output was requested and has been printed."""

    pass


class RegexType(click.ParamType):
    """Click parameter type compiling regular expressions."""

    name = "regex"

    def convert(self, value, param, ctx):
        if isinstance(value, re.Pattern):
            return value
        try:
            return re.compile(value)
        except re.error as e:
            self.fail(f"{value!r} is not a valid regular expression: {e}", param, ctx)


def _print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"testharness {__version__}")
    ctx.exit()


def is_standalone() -> bool:
    """True when no user test classes are loaded yet."""
    for case_class in unittest.TestCase.__subclasses__():
        if case_class.__module__.split(".")[0] != "unittest":
            return False
    return True


class Orchestrator:
    """Configures and drives a single test run."""

    def __init__(
        self,
        standalone: bool,
        settings: Optional[HarnessSettings] = None,
        runners: Optional[StrategyRegistry] = None,
        collectors: Optional[StrategyRegistry] = None,
        environ: Optional[dict[str, str]] = None,
    ):
        """Initialize the orchestrator and load configuration files.

        Args:
            standalone: Whether tests are collected from the filesystem
            settings: Process-wide defaults (default: the module ``SETTINGS``)
            runners: Reporting strategies (default: the global registry)
            collectors: Discovery strategies (default: the global registry)
            environ: Environment used to pick the default runner
        """
        self.standalone = standalone
        self.settings = settings if settings is not None else SETTINGS
        self.runners = runners if runners is not None else RUNNERS
        self.collectors = collectors if collectors is not None else COLLECTORS
        self.environ = environ if environ is not None else dict(os.environ)

        self.runner_id = self._default_runner_id()
        self.collector_id = "load" if standalone else "descendant"
        self.filters = FilterChain()
        self.to_run: list[str] = []
        self.default_test_paths: list[str] = []
        self.pattern: list[re.Pattern] = []
        self.exclude: list[re.Pattern] = []
        self.base: Optional[str] = None
        self.workdir: Optional[str] = None
        self.color_scheme = ColorScheme.default()
        self.listeners: list[Any] = []
        self.runner_options: dict[str, Any] = {}
        self.default_arguments: list[str] = []
        self.untouched_args: list[str] = []
        self.stop_on_failure = False
        self.gc_stress = False
        self.priority_mode = False
        self.test_suite_runner_class: type[SequentialSuiteRunner] = SequentialSuiteRunner
        # Per-run copies of the process defaults; flags never write back.
        self.default_priority = self.settings.default_priority
        self.test_order = self.settings.test_order
        self.n_workers = self.settings.n_workers
        self.max_diff_target_string_size = self.settings.max_diff_target_string_size
        self.debug_on_failure = self.settings.debug_on_failure
        self.suite: Optional[TestSuite] = None
        self.state = RunState.CONSTRUCTED

        self._priority_history: Optional[OutcomeHistory] = None
        self._priority_checker: Optional[PriorityChecker] = None
        self.priority_filter = PriorityFilter(self)

        if Path(CONFIG_FILE).exists():
            self.load_config(CONFIG_FILE)
        else:
            self.load_global_config()
        if Path(PLAIN_TEXT_CONFIG_FILE).exists():
            self.load_plain_text_config(PLAIN_TEXT_CONFIG_FILE)

    @classmethod
    def main(
        cls,
        force_standalone: bool = False,
        default_dir: Optional[str] = None,
        argv: Optional[list[str]] = None,
        **kwargs: Any,
    ) -> bool:
        """Build an orchestrator, process ``argv`` and run.

        Returns:
            True if every test passed (or help was shown), False otherwise
        """
        try:
            orchestrator = cls(force_standalone or is_standalone(), **kwargs)
        except ConfigParseError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            return False

        orchestrator.base = default_dir
        orchestrator.prepare()
        try:
            orchestrator.process_args(sys.argv[1:] if argv is None else argv)
        except UsageRequested:
            return True
        except ConfigParseError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            if e.usage:
                console.print(e.usage, markup=False, highlight=False)
            return False
        return orchestrator.run()

    # Configuration

    def load_config(self, path: Path | str) -> None:
        """Merge a YAML configuration file into the current configuration."""
        config = load_structured_config(path)
        logger.debug("Loaded configuration from %s", path)

        if config.runner in self.runners:
            self.runner_id = config.runner
        if config.collector in self.collectors:
            self.collector_id = config.collector
        for name, definition in config.color_schemes.items():
            ColorScheme.register(name, definition)

        options: dict[str, Any] = {}
        for key, value in config.runner_options(config.runner or self.runner_id).items():
            if key == "arguments":
                self.default_arguments.extend(str(value).split())
            elif key == "color_scheme":
                scheme = ColorScheme.get(value)
                if scheme is None:
                    raise ConfigParseError(f"Unknown color scheme in {path}: {value!r}")
                options[key] = scheme
            else:
                options[key] = value
        self.runner_options = {**self.runner_options, **options}

    def load_global_config(self) -> None:
        path = global_config_path()
        if path is not None and path.exists():
            self.load_config(path)

    def load_plain_text_config(self, path: Path | str) -> None:
        self.default_arguments.extend(load_plain_text_config(path))

    def prepare(self) -> None:
        for hook in PREPARE_HOOKS:
            hook(self)

    # Command line

    def build_command(self) -> click.Command:
        """Build the click command describing the accepted options."""
        params: list[click.Parameter] = [
            click.Option(
                ["-r", "--runner"],
                type=click.Choice(self.runners.ids()),
                help="Use the given RUNNER.",
            ),
            click.Option(
                ["--collector"],
                type=click.Choice(self.collectors.ids()),
                help="Use the given COLLECTOR.",
            ),
        ]

        if self.standalone:
            params += [
                click.Option(["-b", "--basedir"], metavar="DIR", help="Base directory of test suites."),
                click.Option(["-w", "--workdir"], metavar="DIR", help="Working directory to run tests."),
                click.Option(
                    ["--default-test-path"],
                    multiple=True,
                    metavar="PATH",
                    help="Add PATH to the default test paths, used when no test path is given.",
                ),
                click.Option(
                    ["-a", "--add"],
                    multiple=True,
                    metavar="PATH[,PATH...]",
                    help="Add files or directories to the list of things to run.",
                ),
                click.Option(
                    ["-p", "--pattern"],
                    multiple=True,
                    type=RegexType(),
                    help="Match files to collect against PATTERN.",
                ),
                click.Option(
                    ["-x", "--exclude"],
                    multiple=True,
                    type=RegexType(),
                    help="Ignore files to collect against PATTERN.",
                ),
            ]

        params += [
            click.Option(
                ["-n", "--name"],
                multiple=True,
                help="Run tests matching NAME. Use '/PATTERN/flags' for a regular expression.",
            ),
            click.Option(["--ignore-name"], multiple=True, help="Ignore tests matching NAME."),
            click.Option(
                ["-t", "--testcase"],
                multiple=True,
                help="Run tests in test cases matching TESTCASE.",
            ),
            click.Option(
                ["--ignore-testcase"],
                multiple=True,
                help="Ignore tests in test cases matching TESTCASE.",
            ),
            click.Option(
                ["--location"],
                multiple=True,
                metavar="PATH[:LINE]|LINE",
                help="Run tests defined at LOCATION.",
            ),
            click.Option(
                ["--attribute"],
                multiple=True,
                metavar="EXPRESSION",
                help="Run tests whose attributes match EXPRESSION, e.g. 'not slow'.",
            ),
            click.Option(
                ["--priority-mode/--no-priority-mode"],
                default=False,
                help="Run some tests based on their priority.",
            ),
            click.Option(
                ["--default-priority"],
                type=click.Choice(list(PRIORITY_LEVELS)),
                help="Priority of tests that do not declare one.",
            ),
            click.Option(
                ["-I", "--load-path"],
                multiple=True,
                metavar=f"DIR[{os.pathsep}DIR...]",
                help="Append directories to sys.path.",
            ),
            click.Option(
                ["--color-scheme"],
                metavar="SCHEME",
                help=f"Use SCHEME as color scheme ({', '.join(ColorScheme.ids())}).",
            ),
            click.Option(
                ["--config"],
                multiple=True,
                type=click.Path(exists=True, dir_okay=False),
                metavar="FILE",
                help="Use YAML FILE as configuration file.",
            ),
            click.Option(
                ["--order"],
                type=click.Choice(list(AVAILABLE_ORDERS)),
                help="Run tests in a test case in ORDER order.",
            ),
            click.Option(
                ["--max-diff-target-string-size"],
                type=click.IntRange(min=0),
                metavar="SIZE",
                help="Show diffs only for strings up to SIZE characters.",
            ),
            click.Option(
                ["--stop-on-failure/--no-stop-on-failure"],
                default=False,
                help="Stop on the first test that does not pass.",
            ),
            click.Option(
                ["--debug-on-failure/--no-debug-on-failure"],
                default=False,
                help="Run the debugger on failure.",
            ),
            click.Option(
                ["--gc-stress/--no-gc-stress"],
                default=False,
                help="Collect garbage aggressively while each test is running.",
            ),
            click.Option(
                ["--parallel"],
                type=click.Choice(list(PARALLEL_STRATEGIES)),
                metavar="STRATEGY",
                help="Run tests in parallel (thread). A bare --parallel means thread.",
            ),
            click.Option(
                ["--n-workers"],
                type=click.IntRange(min=1),
                metavar="N",
                help=f"Number of parallel workers ({self.n_workers}).",
            ),
        ]

        params.append(
            click.Option(
                ["--version"],
                is_flag=True,
                expose_value=False,
                is_eager=True,
                callback=_print_version,
                help="Show the version and exit.",
            )
        )
        for builder in OPTION_BUILDERS:
            params.append(builder(self))

        params.append(click.Argument(["paths"], nargs=-1))

        return click.Command(
            "testharness",
            params=params,
            help="testharness automatic runner.",
            epilog="Arguments after '--' are passed through untouched.",
            context_settings={"help_option_names": ["-h", "--help"]},
        )

    def usage(self) -> str:
        command = self.build_command()
        with click.Context(command, info_name=command.name) as ctx:
            return command.get_help(ctx)

    def process_args(self, args: list[str]) -> bool:
        """Apply default arguments and ``args``.

        Returns:
            True if test paths were given

        Raises:
            UsageRequested: If help was requested
            ConfigParseError: If the arguments are invalid
        """
        args = [*self.default_arguments, *args]
        if "--" in args:
            index = args.index("--")
            args, self.untouched_args = args[:index], args[index + 1 :]
        # The strategy can only be attached with "=", never taken from the next argument.
        args = ["--parallel=thread" if arg == "--parallel" else arg for arg in args]

        command = self.build_command()
        try:
            ctx = command.make_context(command.name, args)
        except click.exceptions.Exit as e:
            if e.exit_code == 0:
                raise UsageRequested() from e
            raise ConfigParseError(f"Exited with status {e.exit_code}", self.usage()) from e
        except click.UsageError as e:
            raise ConfigParseError(e.format_message(), self.usage()) from e

        try:
            with ctx:
                self._apply_options(ctx)
        except ConfigParseError as e:
            if e.usage is None:
                e.usage = self.usage()
            raise

        self._transition(RunState.CONFIGURED)
        return bool(self.to_run)

    def _apply_options(self, ctx: click.Context) -> None:
        def given(name: str) -> bool:
            return ctx.get_parameter_source(name) == ParameterSource.COMMANDLINE

        params = ctx.params

        # Explicit config files sit below every other command-line option.
        for path in params.get("config") or ():
            self.load_config(path)

        if given("runner"):
            self.runner_id = params["runner"]
        if given("collector"):
            self.collector_id = params["collector"]

        if self.standalone:
            if given("basedir"):
                self.base = params["basedir"]
            if given("workdir"):
                self.workdir = params["workdir"]
            self.default_test_paths.extend(params.get("default_test_path") or ())
            for value in params.get("add") or ():
                for path in value.split(","):
                    if path:
                        self.add_test_path(path)
            self.pattern.extend(params.get("pattern") or ())
            self.exclude.extend(params.get("exclude") or ())

        for name in params.get("name") or ():
            self.filters.add(NameFilter(prepare_name(name)))
        for name in params.get("ignore_name") or ():
            self.filters.add(NameFilter(prepare_name(name), negate=True))
        for name in params.get("testcase") or ():
            self.filters.add(TestCaseFilter(prepare_name(name)))
        for name in params.get("ignore_testcase") or ():
            self.filters.add(TestCaseFilter(prepare_name(name), negate=True))
        for location in params.get("location") or ():
            path, line = parse_location(location)
            self.add_location_filter(path, line)
        for expression in params.get("attribute") or ():
            self.filters.add(AttributeFilter(expression))

        if given("priority_mode"):
            self.set_priority_mode(params["priority_mode"])
        if given("default_priority"):
            self.default_priority = params["default_priority"]

        for dirs in params.get("load_path") or ():
            sys.path.extend(d for d in dirs.split(os.pathsep) if d)

        if given("color_scheme"):
            scheme = ColorScheme.get(params["color_scheme"])
            if scheme is None:
                raise ConfigParseError(
                    f"Invalid value for '--color-scheme': {params['color_scheme']!r} "
                    f"is not one of {', '.join(ColorScheme.ids())}."
                )
            self.color_scheme = scheme
            self.runner_options["color_scheme"] = scheme

        if given("order"):
            self.test_order = params["order"]
        if given("max_diff_target_string_size"):
            self.max_diff_target_string_size = params["max_diff_target_string_size"]
        if given("stop_on_failure"):
            self.stop_on_failure = params["stop_on_failure"]
        if given("debug_on_failure"):
            self.debug_on_failure = params["debug_on_failure"]
        if given("gc_stress"):
            self.gc_stress = params["gc_stress"]
        if given("parallel"):
            self.test_suite_runner_class = PARALLEL_STRATEGIES[params["parallel"]]
        if given("n_workers"):
            self.n_workers = params["n_workers"]

        for path in params.get("paths") or ():
            self.add_test_path(path)

    def add_test_path(self, path: str) -> None:
        """Add a test path; a ``:LINE`` suffix also filters by location."""
        match = re.fullmatch(r"(.+):(\d+)", path, re.DOTALL)
        if match:
            path = match.group(1)
            self.add_location_filter(path, int(match.group(2)))
        self.to_run.append(path)

    def add_location_filter(self, path: Optional[str], line: Optional[int]) -> None:
        try:
            self.filters.add(LocationFilter(path=path, line=line))
        except ValueError as e:
            raise ConfigParseError(str(e)) from e

    def set_priority_mode(self, enabled: bool) -> None:
        self.priority_mode = enabled
        if enabled:
            if self.priority_filter not in self.filters:
                self.filters.add(self.priority_filter)
        else:
            self.filters.remove(self.priority_filter)

    # Priority decisions, used by the priority filter

    @property
    def priority_history(self) -> OutcomeHistory:
        if self._priority_history is None:
            self._priority_history = OutcomeHistory(self.settings.priority_history_path)
        return self._priority_history

    def need_to_run(self, test: TestIdentity) -> bool:
        # Created on first use so that --default-priority has been applied.
        if self._priority_checker is None:
            self._priority_checker = PriorityChecker(
                self.priority_history, self.default_priority
            )
        return self._priority_checker.need_to_run(test)

    # Running

    def run(self) -> bool:
        """Discover and run the tests.

        Returns:
            True if every test passed or no test was found
        """
        self.settings.need_auto_run = False

        try:
            suite = self._discover()
        except (UnresolvedStrategyError, DiscoveryFailure) as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            self._transition(RunState.DONE)
            return False

        self.suite = suite
        if suite.empty:
            self._transition(RunState.EMPTY)
            self._transition(RunState.DONE)
            return True

        try:
            runner = self._resolve(self.runners, self.runner_id)
        except UnresolvedStrategyError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            self._transition(RunState.DONE)
            return False

        self._transition(RunState.DISPATCHING)
        options = self._build_runner_options()
        suite = suite.ordered(self.test_order)
        logger.debug(
            "Dispatching %d tests with %s to %s",
            len(suite),
            self.test_suite_runner_class.__name__,
            self.runner_id,
        )
        with self._work_directory():
            result = runner.run(suite, options)

        self._transition(RunState.DONE)
        return result.passed

    def _transition(self, state: RunState) -> None:
        logger.debug("Run state: %s -> %s", self.state.value, state.value)
        self.state = state

    def _discover(self) -> TestSuite:
        self._transition(RunState.DISCOVERING)
        suite = self._resolve(self.collectors, self.collector_id)
        if suite is None:
            raise DiscoveryFailure(f"Collector {self.collector_id!r} found nothing to run")
        return suite

    def _resolve(self, registry: StrategyRegistry, strategy_id: Optional[str]) -> Any:
        try:
            return registry.build(strategy_id, self)
        except KeyError as e:
            raise UnresolvedStrategyError(registry.kind, strategy_id) from e

    def _build_runner_options(self) -> dict[str, Any]:
        options = dict(self.runner_options)
        options.setdefault("color_scheme", self.color_scheme)

        listeners = [*(options.get("listeners") or []), *self.listeners]
        if self.stop_on_failure:
            listeners.append(StopOnFailureListener())
        if self.gc_stress:
            listeners.append(GCStressListener())
        if self.priority_mode:
            listeners.append(PriorityResultListener(self.priority_history))
        options["listeners"] = listeners

        options["test_suite_runner_class"] = self.test_suite_runner_class
        options["n_workers"] = self.n_workers
        options["debug_on_failure"] = self.debug_on_failure
        options["max_diff_target_string_size"] = self.max_diff_target_string_size
        return options

    @contextlib.contextmanager
    def _work_directory(self):
        if not self.workdir:
            yield
            return
        previous = os.getcwd()
        os.chdir(self.workdir)
        try:
            yield
        finally:
            os.chdir(previous)

    def _default_runner_id(self) -> Optional[str]:
        if self.settings.default_runner in self.runners:
            return self.settings.default_runner
        if self.environ.get("EMACS") == "t":
            return "emacs"
        return "console"


def run(
    force_standalone: bool = False,
    default_dir: Optional[str] = None,
    argv: Optional[list[str]] = None,
) -> bool:
    return Orchestrator.main(force_standalone, default_dir, argv)


def need_auto_run(settings: Optional[HarnessSettings] = None) -> bool:
    return (settings or SETTINGS).need_auto_run
