# Copyright (C) 2018 inbitcoin s.r.l.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

""" The ldk-mock MCP server, serving the tools over stdio """

import sys

from asyncio import run
from configparser import Error as ConfigError
from json import dumps
from logging import getLogger
from signal import signal, SIGTERM

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from . import settings as sett
from .ledger import MockLedger
from .tools import ToolDispatcher
from .utils.exceptions import InterruptException
from .utils.misc import die, handle_keyboardinterrupt, handle_sigterm, \
    init_common, log_intro, log_outro

LOGGER = getLogger(__name__)


def create_server(dispatcher):
    """ Creates an MCP server exposing the tools of dispatcher """
    server = Server(sett.SERVER_NAME)

    @server.list_tools()
    async def list_tools():
        return [Tool(name=tool['name'], description=tool['description'],
                     inputSchema=tool['inputSchema'])
                for tool in dispatcher.list_tools()]

    @server.call_tool()
    async def call_tool(name, arguments):
        response = dispatcher.call(name, arguments)
        return [TextContent(type='text', text=dumps(response, indent=2))]

    return server


async def serve(dispatcher):
    """ Runs the MCP server on stdin/stdout until the stream is closed """
    server = create_server(dispatcher)
    async with stdio_server() as (read_stream, write_stream):
        LOGGER.info('MCP server %s listening on stdio', sett.SERVER_NAME)
        await server.run(read_stream, write_stream,
                         server.create_initialization_options())


@handle_keyboardinterrupt
def _serve_forever(dispatcher):
    run(serve(dispatcher))


def _start_server():
    """ Loads configuration, builds the ledger and serves the tools """
    init_common('Start ldk-mock MCP server')
    log_intro()
    ledger = MockLedger(network=sett.NETWORK, alias=sett.ALIAS)
    LOGGER.info('Node id %s', ledger.node_id)
    _serve_forever(ToolDispatcher(ledger))
    log_outro()


def start():
    """
    ldk-mock server entrypoint.

    Any raised and uncaught exception will be handled here.
    """
    signal(SIGTERM, handle_sigterm)
    try:
        _start_server()
    except RuntimeError as err:
        if str(err):
            LOGGER.error(str(err))
        die()
    except ConfigError as err:
        err_msg = ''
        if str(err):
            err_msg = str(err)
        LOGGER.error('Configuration error: %s', err_msg)
        die()
    except InterruptException:
        log_outro()
        sys.exit(0)
