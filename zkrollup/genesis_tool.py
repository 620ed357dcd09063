"""
Genesis State Tool

Creates a rollup database from a configuration file, so the initial owner,
accounts and balances of a deployment are set up in an auditable way.
"""
import json
import shutil
import argparse
from pathlib import Path

from cryptography.hazmat.primitives import serialization

from zkrollup.config import Config, TOKEN_UNIT
from zkrollup.crypto import generate_key_pair, serialize_public_key, public_key_hash, public_key_to_identity
from zkrollup.rollup import RollupController


def create_genesis_state(config_path: str, output_db_path: str, rollup_config: Config = None) -> bytes | None:
    """
    Initialise a rollup database with pre-funded accounts.

    Args:
        config_path (str): Path to the genesis configuration JSON file.
        output_db_path (str): Path to store the newly created rollup database.

    Returns:
        The resulting state root, or None if the output path already exists.
    """
    print(f"Loading genesis configuration from: {config_path}")
    with open(config_path, 'r') as f:
        config = json.load(f)

    db_path = Path(output_db_path)
    if db_path.exists():
        print(f"Error: Output database path '{db_path}' already exists. Please remove it first.")
        return None

    owner = bytes.fromhex(config['owner'])
    try:
        state_root = _populate(config, db_path, owner, rollup_config)
    except Exception as e:
        # a partly built store would block the next run
        print(f"Error: genesis failed ({e}). Removing {db_path}.")
        if db_path.exists():
            shutil.rmtree(db_path)
        raise

    print("\nGenesis state created successfully!")
    print(f"  - Owner: {owner.hex()}")
    print(f"  - State Root: {state_root.hex()}")
    print(f"Rollup database initialized at: {db_path}")
    return state_root


def _populate(config: dict, db_path: Path, owner: bytes, rollup_config: Config = None) -> bytes:
    rollup = RollupController(db_path=str(db_path), owner=owner, config=rollup_config)
    try:
        print("Processing pre-funded accounts...")
        for account_info in config.get('accounts', []):
            identity = bytes.fromhex(account_info['identity'])
            index = rollup.create_account(identity, bytes.fromhex(account_info['public_key_hash']))
            balance = int(account_info.get('balance', 0)) * TOKEN_UNIT
            if balance:
                rollup.deposit(index, balance)
        print(f"Processed {rollup.total_accounts} accounts.")
        return rollup.current_state_root
    finally:
        rollup.close()

def generate_sample_config(output_path: str):
    """Generates a sample genesis.json configuration file."""
    keys = [generate_key_pair() for _ in range(3)]
    pems = [serialize_public_key(pub) for _, pub in keys]
    identities = [public_key_to_identity(pem).hex() for pem in pems]

    config = {
        "owner": identities[0],
        "accounts": [
            {"identity": identities[1], "public_key_hash": public_key_hash(pems[1]).hex(), "balance": 1000},
            {"identity": identities[2], "public_key_hash": public_key_hash(pems[2]).hex(), "balance": 500},
        ],
    }

    with open(output_path, 'w') as f:
        json.dump(config, f, indent=2)

    print(f"\nGenerated sample genesis configuration at: {output_path}")
    print("Please review and edit this file before creating the genesis state.")
    print("\nSample private keys (DO NOT USE IN PRODUCTION):")
    for identity, (priv, _) in zip(identities, keys):
        pem = priv.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        print(f"  - Identity {identity}: {pem.hex()}")

def main(argv=None):
    parser = argparse.ArgumentParser(description="Rollup Genesis State Tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_sample = subparsers.add_parser("sample-config", help="Generate a sample genesis.json")
    parser_sample.add_argument("--output", type=str, default="genesis.json", help="Output file path")

    parser_create = subparsers.add_parser("create", help="Create the genesis state from a config file")
    parser_create.add_argument("--config", type=str, default="genesis.json", help="Path to genesis config file")
    parser_create.add_argument("--rollup-config", type=str, default=None, help="Optional rollup settings JSON")
    parser_create.add_argument("--output-db", type=str, required=True, help="Path for the new rollup database")

    args = parser.parse_args(argv)

    if args.command == "sample-config":
        generate_sample_config(args.output)
    elif args.command == "create":
        rollup_config = Config.from_file(args.rollup_config) if args.rollup_config else None
        create_genesis_state(args.config, args.output_db, rollup_config)


if __name__ == '__main__':
    main()
