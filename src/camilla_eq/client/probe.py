"""
Command-line probe for a running CamillaDSP engine.

Connects to the control (and, when available, spectrum) socket, issues one
query and prints the result as JSON.

    python -m camilla_eq.client.probe --host 192.168.1.20 state
"""

import argparse
import asyncio
import json
import logging
import sys

from camilla_eq.client.config import ClientConfig
from camilla_eq.client.dsp_client import DspClient
from camilla_eq.client.errors import DspError
from camilla_eq.client.logging_policy import configure_cli_logging

logger = logging.getLogger(__name__)

QUERIES = ('state', 'volume', 'version', 'config', 'devices')


async def run_query(client, query, backend='Alsa'):
    """Run *query* against a connected *client* and return a JSON-able result."""
    if query == 'state':
        return await client.get_state()
    if query == 'volume':
        return await client.get_volume()
    if query == 'version':
        return await client.get_version()
    if query == 'config':
        return client.config
    if query == 'devices':
        capture = await client.get_available_capture_devices(backend)
        playback = await client.get_available_playback_devices(backend)
        return {'capture': capture, 'playback': playback}
    raise ValueError(f'unknown query: {query}')


async def _probe(args):
    env = ClientConfig.from_env()
    client = DspClient(env)
    try:
        await client.connect(
            host=args.host,
            control_port=args.control_port,
            spectrum_port=args.spectrum_port,
        )
        return await run_query(client, args.query, backend=args.backend)
    finally:
        await client.disconnect()


def main(argv=None):
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        description='Query a CamillaDSP engine over its websocket API'
    )
    parser.add_argument(
        '--host',
        default=None,
        help='DSP hostname/IP (default: $CAMILLA_EQ_HOST)'
    )
    parser.add_argument(
        '--control-port',
        type=int,
        default=None,
        help='Control socket port (default: $CAMILLA_EQ_CONTROL_PORT or 1234)'
    )
    parser.add_argument(
        '--spectrum-port',
        type=int,
        default=None,
        help='Spectrum socket port (default: $CAMILLA_EQ_SPECTRUM_PORT or 1235)'
    )
    parser.add_argument(
        '--backend',
        default='Alsa',
        help='Audio backend for the devices query (default: Alsa)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument('query', choices=QUERIES)

    args = parser.parse_args(argv)
    configure_cli_logging(debug=args.debug)

    try:
        result = asyncio.run(_probe(args))
    except DspError as exc:
        logger.error("Probe failed: %s", exc)
        return 1

    json.dump(result, sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write('\n')
    return 0


if __name__ == '__main__':
    sys.exit(main())
