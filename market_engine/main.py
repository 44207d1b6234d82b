import argparse
import logging
import logging.config
import os

import uvicorn
import yaml

from api.main import create_app
from market_engine.settings import load_settings

"""Driver module"""

LOG_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "log_config.yml")

logger = logging.getLogger(__name__)


def init_argparse() -> argparse.Namespace:
    """Fetch the command line arguments and configure logging from them"""
    global logger
    parser = argparse.ArgumentParser(description='Markets Service')
    parser.add_argument('-d', '--debug', action='store_true', help='set the logging level to logging.DEBUG')
    parser.add_argument('-c', '--config', default='config.cfg', help='optional config file with a [MARKETS] section')
    args = parser.parse_args()
    with open(LOG_CONFIG_PATH, 'r') as f:
        log_cfg = yaml.safe_load(f.read())
        log_cfg['root']['level'] = 'DEBUG' if args.debug else 'INFO'
        logging.config.dictConfig(log_cfg)
        logger = logging.getLogger(__name__)
        logger.debug('DEBUG MODE ENABLED')
    return args


def main():
    """Main function that runs the service."""
    args = init_argparse()
    settings = load_settings(args.config)
    logger.info(f"Starting markets service for group {settings.group_name} on {settings.host}:{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == '__main__':
    main()
