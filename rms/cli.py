"""
Manage user rights and passwords from a terminal.

.. code-block:: bash

   $ rms-user --user=joe@example.com --grant="member of administrators"
   $ rms-user --user=12 --has-right="create user" --list
   $ rms-user --user=joe@example.com --set-password=secret1

The command prints a JSON report and exits with status 1 when the user does
not exist or a grant or revoke did not have the expected effect.
"""

from typing import Any, Dict, Optional, Tuple
import json
import logging

import click
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from . import config
from .app_logging import setup_logger
from .exceptions import InvalidArgument
from .service import Registry
from .users import User

logger = logging.getLogger(__name__)


class CommandFailed(Exception):
    """The requested operation did not have the expected outcome."""


def _check_right(user: User, right: str, expects: Optional[bool]) \
        -> Tuple[bool, str]:
    held = user.has_right(right)
    verb = 'has' if held else 'does not have'
    if expects is not None and expects != held:
        raise CommandFailed(
            f'User {user.username} {verb} permission {json.dumps(right)}'
            f' but it was expected to {"have" if expects else "not have"}'
            ' it.'
        )
    message = f'User {user.username} {verb} permission {json.dumps(right)}'
    return held, message


def run_user_command(registry: Registry,
                     request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply the operations in ``request`` to one user.

    Parameters
    ----------
    registry : :class:`.Registry`
    request : dict
        ``user`` (username or ID) and any of ``grant``, ``revoke``,
        ``has_right``, ``list`` and ``set_password``.

    Returns
    -------
    dict
        ``userName``, ``userId`` and ``report``, plus ``hasRight`` and
        ``permissions`` when they were asked about.

    Raises
    ------
    :class:`CommandFailed`
        Unknown user, or a grant or revoke that did not take.

    """
    user = registry.find_user(request.get('user'))
    if user is None:
        raise CommandFailed(f'User {json.dumps(request.get("user"))} not'
                            ' found. Specify correct --user=<email or id>')

    response: Dict[str, Any] = {'userName': user.username,
                                'userId': user.id, 'report': {}}
    report = response['report']

    if request.get('grant'):
        user.grant(request['grant'])
        response['hasRight'], report['grant'] = \
            _check_right(user, request['grant'], True)
    if request.get('revoke'):
        user.revoke(request['revoke'])
        response['hasRight'], report['revoke'] = \
            _check_right(user, request['revoke'], False)
    if request.get('has_right'):
        response['hasRight'], report['hasRight'] = \
            _check_right(user, request['has_right'], None)
    if request.get('list'):
        permissions = [str(command) for command in user.list_permissions()]
        response['permissions'] = permissions
        report['list'] = f'Listed {len(permissions)} permissions for user' \
                         f' {user.username}'
    if request.get('set_password'):
        user.set_password(request['set_password'])
        user.save()
        report['setPassword'] = f'Set password for user {user.username}'
    return response


@click.command('rms-user')
@click.option('--user', 'who', required=True, help='E-mail or ID of the user')
@click.option('--grant', help='Right to grant')
@click.option('--revoke', help='Right to revoke')
@click.option('--has-right', help='Right to check')
@click.option('--list', 'list_', is_flag=True, help='List all rights')
@click.option('--set-password', help='New password')
@click.option('--database', envvar='SQLALCHEMY_DATABASE_URI',
              default=config.SQLALCHEMY_DATABASE_URI, show_default=True)
def main(who: str, grant: Optional[str], revoke: Optional[str],
         has_right: Optional[str], list_: bool, set_password: Optional[str],
         database: str) -> None:
    """Grant, revoke, check or list the rights of a user."""
    if not logging.getLogger().handlers:
        setup_logger(config.LOG_LEVEL, config.LOG_FORMAT)
    session = sessionmaker(bind=create_engine(database))()
    request = {'user': who, 'grant': grant, 'revoke': revoke,
               'has_right': has_right, 'list': list_,
               'set_password': set_password}
    try:
        response = run_user_command(Registry(session), request)
    except (CommandFailed, InvalidArgument) as e:
        click.echo(json.dumps({'status': 'error', 'message': str(e)}))
        raise SystemExit(1)
    finally:
        session.close()
    click.echo(json.dumps(dict(response, status='ok'), indent=2))


if __name__ == '__main__':
    main()
