import logging

from phl_hedonic import config
from phl_hedonic.pipeline import run


def main():
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config.ensure_directories()
    result = run()
    print(result.overall.to_string(index=False))


if __name__ == "__main__":
    main()
