"""Tests for ContainerManager (runtime CLI mocked)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from apex_containers.containers.events import LifecycleEvent, LifecycleOperation
from apex_containers.containers.manager import ContainerManager
from apex_containers.containers.models import ContainerStatus, CreationRequest, EnvironmentConfig
from apex_containers.runtime.errors import CommandError, CommandTimeoutError
from apex_containers.runtime.process import CommandOutput
from apex_containers.runtime.selector import RuntimeType
from apex_containers.settings import ManagerSettings

INSPECT_LINE = "abc123|/apex-t1|alpine:latest|running|2024-01-01T12:00:00Z|2024-01-01T12:00:01Z||0"


class StaticRuntime:
    """Runtime selector with a fixed answer."""

    def __init__(self, runtime: RuntimeType = RuntimeType.DOCKER) -> None:
        self.runtime = runtime

    async def best_runtime(self, preferred: RuntimeType | None = None) -> RuntimeType:
        return self.runtime

    async def is_available(self, name: RuntimeType) -> bool:
        return name is self.runtime


def _runtime_cli(
    *,
    create: CommandOutput | Exception = CommandOutput(stdout="abc123\n"),
    start: CommandOutput | Exception = CommandOutput(stdout="abc123\n"),
    inspect: CommandOutput | Exception = CommandOutput(stdout=INSPECT_LINE + "\n"),
    rm: CommandOutput | Exception = CommandOutput(stdout="abc123\n"),
):
    """Fake ``_run_command`` dispatching on the runtime subcommand."""
    outcomes = {"create": create, "start": start, "inspect": inspect, "rm": rm}

    async def _run(argv: list[str], *, timeout: float) -> CommandOutput:
        outcome = outcomes[argv[1]]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return _run


def _request(**kwargs) -> CreationRequest:
    kwargs.setdefault("config", EnvironmentConfig(image="alpine:latest"))
    kwargs.setdefault("task_id", "t1")
    return CreationRequest(**kwargs)


def _subcommands(mock_run: AsyncMock) -> list[str]:
    return [c.args[0][1] for c in mock_run.call_args_list]


class TestCreateContainer:
    def _make_manager(self, runtime: RuntimeType = RuntimeType.DOCKER, **kwargs) -> ContainerManager:
        return ContainerManager(StaticRuntime(runtime), **kwargs)

    async def test_create_without_start(self) -> None:
        manager = self._make_manager()

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()) as mock_run:
            result = await manager.create_container(_request())

        assert result.success is True
        assert result.container_id == "abc123"
        assert result.error is None
        assert result.container_info is None
        assert "--name apex-t1" in result.command
        assert "alpine:latest" in result.command
        assert _subcommands(mock_run) == ["create"]

    async def test_injects_management_labels(self) -> None:
        manager = self._make_manager()

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()):
            result = await manager.create_container(_request())

        assert "apex.managed=true" in result.argv
        assert "apex.container-name=apex-t1" in result.argv

    async def test_create_uses_selected_runtime_binary(self) -> None:
        manager = self._make_manager(RuntimeType.PODMAN)

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()):
            result = await manager.create_container(_request())

        assert result.argv[:2] == ["podman", "create"]

    async def test_name_override_used_verbatim(self) -> None:
        manager = self._make_manager()

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()):
            result = await manager.create_container(_request(name_override="custom name"))

        assert result.argv[result.argv.index("--name") + 1] == "custom name"
        assert "apex-t1" not in result.command
        assert "apex.container-name=custom name" in result.argv

    async def test_no_runtime(self) -> None:
        manager = self._make_manager(RuntimeType.NONE)
        events: list[LifecycleEvent] = []
        manager.subscribe(events.append)

        with patch.object(ContainerManager, "_run_command", new_callable=AsyncMock) as mock_run:
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is False
        assert result.error == "No container runtime available"
        assert result.command is None
        mock_run.assert_not_awaited()
        assert [(e.operation, e.success) for e in events] == [(LifecycleOperation.CREATED, False)]

    async def test_create_failure_reports_runtime_message(self) -> None:
        manager = self._make_manager()
        events: list[LifecycleEvent] = []
        manager.subscribe(events.append)
        error = CommandError(["docker", "create"], 'Conflict. The container name "/apex-t1" is already in use')

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli(create=error)) as mock_run:
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is False
        assert result.container_id is None
        assert result.error == 'Container creation failed: Conflict. The container name "/apex-t1" is already in use'
        assert result.command is not None
        assert _subcommands(mock_run) == ["create"]
        assert [(e.operation, e.success) for e in events] == [(LifecycleOperation.CREATED, False)]
        assert events[0].error == result.error

    async def test_create_timeout_is_a_creation_failure(self) -> None:
        manager = self._make_manager()
        timeout = CommandTimeoutError(["docker", "create"], 30.0)

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli(create=timeout)):
            result = await manager.create_container(_request())

        assert result.success is False
        assert result.error == "Container creation failed: Command timed out after 30.0s"

    async def test_auto_start_attaches_snapshot(self) -> None:
        manager = self._make_manager()

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()) as mock_run:
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is True
        assert result.container_id == "abc123"
        assert _subcommands(mock_run) == ["create", "start", "inspect"]
        assert result.container_info is not None
        assert result.container_info.name == "apex-t1"
        assert result.container_info.status is ContainerStatus.RUNNING
        assert result.container_info.exit_code == 0

    async def test_events_created_then_started(self) -> None:
        manager = self._make_manager()
        lifecycle: list[LifecycleEvent] = []
        created: list[LifecycleEvent] = []
        started: list[LifecycleEvent] = []
        manager.subscribe(lifecycle.append)
        manager.subscribe(created.append, LifecycleOperation.CREATED)
        manager.subscribe(started.append, LifecycleOperation.STARTED)

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()):
            await manager.create_container(_request(auto_start=True))

        assert [e.operation for e in lifecycle] == [LifecycleOperation.CREATED, LifecycleOperation.STARTED]
        assert lifecycle[0].timestamp <= lifecycle[1].timestamp
        assert len(created) == 1 and len(started) == 1
        assert created[0].container_id == "abc123"
        assert created[0].task_id == "t1"
        assert created[0].success is True
        assert "create" in created[0].command
        assert started[0].success is True

    async def test_start_failure_cleans_up_once(self) -> None:
        manager = self._make_manager()
        events: list[LifecycleEvent] = []
        manager.subscribe(events.append)
        error = CommandError(["docker", "start", "abc123"], "OCI runtime create failed")

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli(start=error)) as mock_run:
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is False
        assert result.container_id is None
        assert "Container start failed" in result.error
        assert result.error == "Container start failed: OCI runtime create failed"

        rm_calls = [c.args[0] for c in mock_run.call_args_list if c.args[0][1] == "rm"]
        assert rm_calls == [["docker", "rm", "abc123"]]
        assert "inspect" not in _subcommands(mock_run)

        assert [(e.operation, e.success) for e in events] == [
            (LifecycleOperation.CREATED, True),
            (LifecycleOperation.STARTED, False),
        ]
        assert events[1].container_id == "abc123"

    async def test_cleanup_failure_does_not_mask_start_error(self) -> None:
        manager = self._make_manager()
        start_error = CommandError(["docker", "start", "abc123"], "port is already allocated")
        rm_error = CommandError(["docker", "rm", "abc123"], "daemon went away")

        with patch.object(
            ContainerManager,
            "_run_command",
            side_effect=_runtime_cli(start=start_error, rm=rm_error),
        ):
            result = await manager.create_container(_request(auto_start=True))

        assert result.error == "Container start failed: port is already allocated"

    async def test_start_timeout_is_a_start_failure(self) -> None:
        manager = self._make_manager()
        timeout = CommandTimeoutError(["docker", "start", "abc123"], 30.0)

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli(start=timeout)) as mock_run:
            result = await manager.create_container(_request(auto_start=True))

        assert result.error == "Container start failed: Command timed out after 30.0s"
        assert _subcommands(mock_run).count("rm") == 1

    async def test_inspect_failure_keeps_start_success(self) -> None:
        manager = self._make_manager()
        error = CommandError(["docker", "inspect"], "No such object")

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli(inspect=error)):
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is True
        assert result.container_info is None

    async def test_unexpected_exception_is_normalised(self) -> None:
        manager = self._make_manager()
        manager._selector = AsyncMock()
        manager._selector.best_runtime.side_effect = RuntimeError("selector exploded")
        events: list[LifecycleEvent] = []
        manager.subscribe(events.append)

        result = await manager.create_container(_request())

        assert result.success is False
        assert result.error == "Container creation failed: selector exploded"
        assert [(e.operation, e.success) for e in events] == [(LifecycleOperation.CREATED, False)]

    async def test_exception_without_message_uses_type_name(self) -> None:
        manager = self._make_manager()

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli(create=KeyError())):
            result = await manager.create_container(_request())

        assert result.error == "Container creation failed: KeyError"

    async def test_unexpected_start_error_cleans_up_once(self) -> None:
        manager = self._make_manager()
        events: list[LifecycleEvent] = []
        manager.subscribe(events.append)

        with patch.object(
            ContainerManager,
            "_run_command",
            side_effect=_runtime_cli(start=ProcessLookupError("No such process")),
        ) as mock_run:
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is False
        assert result.container_id is None
        assert result.error == "Container start failed: No such process"
        assert _subcommands(mock_run) == ["create", "start", "rm"]
        assert [(e.operation, e.success) for e in events] == [
            (LifecycleOperation.CREATED, True),
            (LifecycleOperation.STARTED, False),
        ]
        assert events[1].container_id == "abc123"

    async def test_unexpected_inspect_error_keeps_start_success(self) -> None:
        manager = self._make_manager()

        with patch.object(
            ContainerManager,
            "_run_command",
            side_effect=_runtime_cli(inspect=OSError("pipe closed")),
        ) as mock_run:
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is True
        assert result.container_info is None
        assert "rm" not in _subcommands(mock_run)

    async def test_exception_after_create_reports_started_failure(self) -> None:
        manager = self._make_manager()
        events: list[LifecycleEvent] = []
        manager.subscribe(events.append)

        with (
            patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()),
            patch.object(ContainerManager, "_start", side_effect=ValueError("bad state")),
        ):
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is False
        assert result.error == "Container creation failed: bad state"
        assert [(e.operation, e.success) for e in events] == [
            (LifecycleOperation.CREATED, True),
            (LifecycleOperation.STARTED, False),
        ]

    async def test_listener_error_does_not_fail_request(self) -> None:
        manager = self._make_manager()

        def _bad_listener(event: LifecycleEvent) -> None:
            raise RuntimeError("observer bug")

        manager.subscribe(_bad_listener)
        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()):
            result = await manager.create_container(_request(auto_start=True))

        assert result.success is True


class TestContainerNames:
    def test_default(self) -> None:
        assert ContainerManager(StaticRuntime()).generate_container_name("t1") == "apex-t1"

    def test_unsafe_characters_replaced(self) -> None:
        manager = ContainerManager(StaticRuntime())
        assert manager.generate_container_name("feat/login fix") == "apex-feat_login_fix"

    def test_custom_prefix_and_separator(self) -> None:
        settings = ManagerSettings(name_prefix="ci", name_separator="_")
        assert ContainerManager(StaticRuntime(), settings=settings).generate_container_name("t1") == "ci_t1"

    def test_without_task_id(self) -> None:
        settings = ManagerSettings(include_task_id=False)
        assert ContainerManager(StaticRuntime(), settings=settings).generate_container_name("t1") == "apex"

    def test_with_timestamp(self) -> None:
        settings = ManagerSettings(include_timestamp=True)
        manager = ContainerManager(StaticRuntime(), settings=settings)

        with patch("apex_containers.containers.manager.time.time", return_value=1.0):
            # 1000 ms in base 36
            assert manager.generate_container_name("t1") == "apex-t1-rs"


class TestIndividualOperations:
    async def test_start_container(self) -> None:
        manager = ContainerManager(StaticRuntime())

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()):
            result = await manager.start_container("abc123")

        assert result.success is True
        assert result.command == "docker start abc123"
        assert result.container_info is not None

    async def test_start_container_failure(self) -> None:
        manager = ContainerManager(StaticRuntime())
        error = CommandError(["docker", "start", "nope"], "No such container: nope")

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli(start=error)) as mock_run:
            result = await manager.start_container("nope")

        assert result.error == "Container start failed: No such container: nope"
        # A standalone start never removes anything
        assert "rm" not in _subcommands(mock_run)

    async def test_stop_container(self) -> None:
        manager = ContainerManager(StaticRuntime())

        with patch.object(ContainerManager, "_run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandOutput(stdout="abc123\n")
            result = await manager.stop_container("abc123", timeout=3)

        assert result.success is True
        assert mock_run.call_args.args[0] == ["docker", "stop", "--time", "3", "abc123"]

    async def test_stop_container_failure(self) -> None:
        manager = ContainerManager(StaticRuntime())

        with patch.object(
            ContainerManager,
            "_run_command",
            new_callable=AsyncMock,
            side_effect=CommandError(["docker", "stop"], "No such container"),
        ):
            result = await manager.stop_container("abc123")

        assert result.error == "Container stop failed: No such container"

    @pytest.mark.parametrize(("force", "expected"), [(False, ["docker", "rm", "x"]), (True, ["docker", "rm", "--force", "x"])])
    async def test_remove_container(self, force: bool, expected: list[str]) -> None:
        manager = ContainerManager(StaticRuntime())

        with patch.object(ContainerManager, "_run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandOutput(stdout="x\n")
            result = await manager.remove_container("x", force=force)

        assert result.success is True
        assert mock_run.call_args.args[0] == expected

    async def test_remove_container_failure(self) -> None:
        manager = ContainerManager(StaticRuntime())

        with patch.object(
            ContainerManager,
            "_run_command",
            new_callable=AsyncMock,
            side_effect=CommandError(["docker", "rm"], "container is running"),
        ):
            result = await manager.remove_container("x")

        assert result.error == "Container removal failed: container is running"

    async def test_operations_without_runtime(self) -> None:
        manager = ContainerManager(StaticRuntime(RuntimeType.NONE))

        assert (await manager.start_container("x")).error == "No container runtime available"
        assert (await manager.stop_container("x")).error == "No container runtime available"
        assert (await manager.remove_container("x")).error == "No container runtime available"
        assert await manager.get_container_info("x") is None
        assert await manager.list_containers() == []

    async def test_get_container_info(self) -> None:
        manager = ContainerManager(StaticRuntime())

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli()):
            info = await manager.get_container_info("abc123")

        assert info is not None
        assert info.image == "alpine:latest"

    async def test_get_container_info_missing(self) -> None:
        manager = ContainerManager(StaticRuntime())
        error = CommandError(["docker", "inspect"], "No such object: x")

        with patch.object(ContainerManager, "_run_command", side_effect=_runtime_cli(inspect=error)):
            assert await manager.get_container_info("x") is None

    async def test_list_containers(self) -> None:
        manager = ContainerManager(StaticRuntime())
        outputs = {
            "ps": CommandOutput(stdout="abc123\ndef456\n\n"),
            "inspect": CommandOutput(stdout=INSPECT_LINE),
        }

        async def _run(argv: list[str], *, timeout: float) -> CommandOutput:
            return outputs[argv[1]]

        with patch.object(ContainerManager, "_run_command", side_effect=_run) as mock_run:
            containers = await manager.list_containers(include_exited=True)

        assert len(containers) == 2
        ps_argv = mock_run.call_args_list[0].args[0]
        assert "--all" in ps_argv
        assert "label=apex.managed=true" in ps_argv

    async def test_list_containers_failure(self) -> None:
        manager = ContainerManager(StaticRuntime())

        with patch.object(
            ContainerManager,
            "_run_command",
            new_callable=AsyncMock,
            side_effect=CommandError(["docker", "ps"], "daemon down"),
        ):
            assert await manager.list_containers() == []
