"""Tests for the command line interface."""
from unittest.mock import patch

from skylambda import cli
from skylambda import data_models
from skylambda import exceptions


def _config(tmp_path):
    path = tmp_path / 'skylambda.yaml'
    path.write_text('instance: my-app\nname: foo\n')
    return str(path)


@patch('skylambda.cli.skylambda.deploy')
def test_deploy(mock_deploy, tmp_path, capsys):
    mock_deploy.return_value = data_models.DeployResult(
        name='foo', arn='arn:fn', security_group_ids=[], subnet_ids=[])

    code = cli.main(['--state-dir', str(tmp_path), 'deploy', '-c',
                     _config(tmp_path)])

    assert code == 0
    func = mock_deploy.call_args[0][0]
    assert func.name == 'foo'
    assert mock_deploy.call_args[1]['state_key'] == 'my-app'
    assert mock_deploy.call_args[1]['cloud'] == 'aws'
    assert 'arn:fn' in capsys.readouterr().out


@patch('skylambda.cli.skylambda.remove')
def test_remove(mock_remove, tmp_path):
    mock_remove.return_value = {}
    assert cli.main(['remove', '-c', _config(tmp_path)]) == 0
    assert mock_remove.call_args[0][0] == 'my-app'


@patch('skylambda.cli.skylambda.metrics')
def test_metrics(mock_metrics, tmp_path):
    mock_metrics.return_value = {'metrics': []}
    assert cli.main([
        'metrics', '-c',
        _config(tmp_path), '--range-start', '2024-01-01', '--range-end',
        '2024-01-02'
    ]) == 0
    assert mock_metrics.call_args[0] == ('my-app', '2024-01-01', '2024-01-02')


@patch('skylambda.cli.skylambda.deploy')
def test_user_errors_exit_non_zero(mock_deploy, tmp_path, capsys):
    mock_deploy.side_effect = exceptions.IdentityChangeRejected('renamed')
    assert cli.main(['deploy', '-c', _config(tmp_path)]) == 1
    assert 'renamed' in capsys.readouterr().err


def test_missing_config_file(tmp_path, capsys):
    assert cli.main(['deploy', '-c', str(tmp_path / 'missing.yaml')]) == 1
    assert 'Error' in capsys.readouterr().err


def test_malformed_config_file(tmp_path, capsys):
    path = tmp_path / 'skylambda.yaml'
    path.write_text('name: [foo\n')
    assert cli.main(['deploy', '-c', str(path)]) == 1
    assert 'Error' in capsys.readouterr().err
