# Copyright 2024 SkyPilot Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Command line interface: `skylambda deploy|remove|metrics`."""
import argparse
import json
import sys
from typing import List, Optional

import yaml

import skylambda
from skylambda import config as config_lib
from skylambda import exceptions
from skylambda import state as state_lib
from skylambda.utils import ux_utils


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='skylambda',
        description='Deploy a serverless function and its schedule.')
    parser.add_argument('--cloud', default='aws', help='Cloud provider.')
    parser.add_argument(
        '--state-dir',
        default=None,
        help='Directory holding deployment state '
        '(default: $SKYLAMBDA_STATE_DIR or ~/.skylambda/state).')
    subparsers = parser.add_subparsers(dest='command', required=True)

    for command, help_text in (
        ('deploy', 'Create or update the function.'),
        ('remove', 'Remove the function, its roles and its schedule.'),
        ('metrics', 'Show metrics of the function.'),
    ):
        subparser = subparsers.add_parser(command, help=help_text)
        subparser.add_argument('-c',
                               '--config',
                               default='skylambda.yaml',
                               help='Function configuration file.')

    metrics_parser = subparsers.choices['metrics']
    metrics_parser.add_argument('--range-start',
                                help='ISO 8601 start, e.g. 2024-01-01T00:00Z')
    metrics_parser.add_argument('--range-end',
                                help='ISO 8601 end, e.g. 2024-01-02T00:00Z')
    return parser


def _run(args: argparse.Namespace) -> None:
    func, state_key = config_lib.load_function_config(args.config)
    state_store = state_lib.FileStateStore(args.state_dir)
    console = ux_utils.get_console()

    if args.command == 'metrics':
        result = skylambda.metrics(state_key,
                                   args.range_start,
                                   args.range_end,
                                   cloud=args.cloud,
                                   state_store=state_store)
        console.print_json(json.dumps(result))
        return

    with console.status(ux_utils.spinner_message('Starting...')) as status:

        def _update_status(message: str) -> None:
            status.update(ux_utils.spinner_message(message))

        if args.command == 'deploy':
            result = skylambda.deploy(func,
                                      cloud=args.cloud,
                                      state_key=state_key,
                                      state_store=state_store,
                                      status_callback=_update_status)
        else:
            skylambda.remove(state_key,
                             cloud=args.cloud,
                             state_store=state_store,
                             status_callback=_update_status)
            result = None

    if result is None:
        print(ux_utils.finishing_message(f'Function {func.name!r} removed.'))
    else:
        print(ux_utils.finishing_message(f'Function {func.name!r} deployed.'))
        console.print_json(json.dumps(result.to_dict()))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        _run(args)
    except (exceptions.ServerlessError, ValueError, OSError,
            yaml.YAMLError) as e:
        print(ux_utils.error_message(f'Error: {e}'), file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
