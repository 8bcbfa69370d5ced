#! /usr/bin/env python3
import argparse
import json
import sys

from fedhub.entity import FederationEntity
from fedhub.exception import FedHubError


def main(argv=None):
    parser = argparse.ArgumentParser(description="Resolve the metadata of a federation entity")
    parser.add_argument('-c', dest='config', required=True, help="Configuration file")
    parser.add_argument('-t', dest='timeout', type=float, default=None,
                        help="Give up after this many seconds")
    parser.add_argument(dest="entity_id")
    args = parser.parse_args(argv)

    entity = FederationEntity.from_config_file(args.config)
    try:
        _metadata = entity.resolve(args.entity_id, timeout=args.timeout)
    except FedHubError as err:
        print(json.dumps({"error": err.kind.value if err.kind else "error",
                          "error_description": str(err)}, indent=2))
        return 1

    print(json.dumps({"entity_id": _metadata.entity_id, "trust_anchor": _metadata.anchor,
                      "expires_at": _metadata.expires_at, "metadata": _metadata.to_dict()},
                     indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
