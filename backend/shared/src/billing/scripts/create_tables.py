"""Provision the billing DynamoDB tables for an environment.

Usage:
    billing-create-tables --env dev
    billing-create-tables --env dev --endpoint-url http://localhost:8000
    billing-create-tables --prefix my-sandbox --region eu-west-1
"""

import argparse
import os

import boto3

from billing.services.dynamodb import table_prefix
from billing.services.schema import create_tables


def main(argv: list[str] | None = None) -> int:
    """Run the provisioning script."""
    parser = argparse.ArgumentParser(description="Create billing DynamoDB tables")
    parser.add_argument(
        "--env",
        choices=["dev", "staging", "prod"],
        default="dev",
        help="Target environment (default: dev)",
    )
    parser.add_argument(
        "--prefix",
        help="Table name prefix (default: DYNAMODB_TABLE_PREFIX or billing-<env>)",
    )
    parser.add_argument(
        "--region",
        default=os.environ.get("AWS_DEFAULT_REGION", "ap-south-1"),
        help="AWS region (default: ap-south-1 or AWS_DEFAULT_REGION env var)",
    )
    parser.add_argument(
        "--endpoint-url",
        help="DynamoDB endpoint, e.g. a local DynamoDB instance",
    )
    args = parser.parse_args(argv)

    prefix = args.prefix or table_prefix(args.env)
    client_kwargs = {"region_name": args.region}
    if args.endpoint_url:
        client_kwargs["endpoint_url"] = args.endpoint_url
    client = boto3.client("dynamodb", **client_kwargs)

    print(f"\nCreating tables with prefix {prefix} (region: {args.region})\n")
    created = create_tables(client, prefix)
    for name in created:
        print(f"  created {name}")
    if not created:
        print("  all tables already exist")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
