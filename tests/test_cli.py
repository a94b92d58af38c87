import pytest
from pulumi.automation.errors import CommandError

from provisioning import cli
from provisioning.settings import Settings
from provisioning.validation import ConfigValidationError


@pytest.fixture
def runner(mocker):
    runner = mocker.Mock()
    runner.settings = Settings(pulumi_stack="dev")
    return runner


def _args(*argv):
    return cli.build_parser().parse_args(list(argv))


def test_parser_global_options():
    args = _args("--stack", "prod", "--log-level", "DEBUG", "outputs", "--show-secrets")

    assert args.stack == "prod"
    assert args.log_level == "DEBUG"
    assert args.command == "outputs"
    assert args.show_secrets is True


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        _args()


def test_up_prints_kubectl_hint(runner, capsys):
    runner.up.return_value = {
        "cluster_name": "example-eks",
        "cluster_endpoint": "https://example",
        "update_kubeconfig_command": "aws eks update-kubeconfig --region us-east-1 --name example-eks",
    }

    assert cli.run(_args("up"), runner) == 0

    out = capsys.readouterr().out
    assert "cluster_name: example-eks" in out
    assert "aws eks update-kubeconfig --region us-east-1 --name example-eks" in out


def test_drift_exit_code(runner):
    runner.check_drift.return_value = {"update": 2}
    assert cli.run(_args("drift"), runner) == cli.EXIT_DRIFT

    runner.check_drift.return_value = {}
    assert cli.run(_args("drift"), runner) == 0


def test_kubeconfig_written_to_file(runner, tmp_path):
    runner.kubeconfig.return_value = "apiVersion: v1\n"
    target = tmp_path / "kube" / "config"

    assert cli.run(_args("kubeconfig", "-o", str(target)), runner) == 0

    assert target.read_text() == "apiVersion: v1\n"
    assert target.stat().st_mode & 0o777 == 0o600


def test_destroy_requires_confirmation(mocker, runner):
    mocker.patch("builtins.input", return_value="staging")

    assert cli.run(_args("destroy"), runner) == 0
    runner.destroy.assert_not_called()


def test_destroy_confirmed_by_stack_name(mocker, runner):
    mocker.patch("builtins.input", return_value="dev\n")

    assert cli.run(_args("destroy"), runner) == 0
    runner.destroy.assert_called_once_with()


def test_destroy_yes_skips_prompt(mocker, runner):
    mock_input = mocker.patch("builtins.input")

    cli.run(_args("destroy", "--yes"), runner)

    mock_input.assert_not_called()
    runner.destroy.assert_called_once_with()


@pytest.fixture
def main_runner(mocker):
    mocker.patch("provisioning.cli.load_dotenv")
    mocker.patch("provisioning.cli.get_settings", return_value=Settings(pulumi_stack="dev"))
    return mocker.patch("provisioning.cli.StackRunner").return_value


def test_main_invalid_config_exit_code(main_runner):
    main_runner.preview.side_effect = ConfigValidationError.single(
        "network.zone_count", "Requested 4 availability zones but only 3 are available", "4"
    )

    assert cli.main(["preview"]) == cli.EXIT_INVALID_CONFIG


def test_main_engine_error_exit_code(mocker, main_runner):
    main_runner.up.side_effect = CommandError(mocker.Mock(stderr="error: update failed", code=1))

    assert cli.main(["up"]) == cli.EXIT_ENGINE_ERROR


def test_main_missing_kubeconfig(main_runner):
    main_runner.kubeconfig.side_effect = LookupError("no kubeconfig output")

    assert cli.main(["kubeconfig"]) == cli.EXIT_ENGINE_ERROR


def test_main_applies_stack_override(mocker):
    mocker.patch("provisioning.cli.load_dotenv")
    mocker.patch("provisioning.cli.get_settings", return_value=Settings(pulumi_stack="dev"))
    mock_runner_cls = mocker.patch("provisioning.cli.StackRunner")
    mock_runner_cls.return_value.check_drift.return_value = {}

    assert cli.main(["--stack", "prod", "drift"]) == 0

    settings = mock_runner_cls.call_args.args[0]
    assert settings.pulumi_stack == "prod"
