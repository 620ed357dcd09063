"""
Tests for the genesis state tool.
"""
import json
import os
import shutil
import tempfile
import unittest
from zkrollup.config import TOKEN_UNIT
from zkrollup.errors import AccountExists
from zkrollup.genesis_tool import create_genesis_state, main
from zkrollup.rollup import RollupController


class TestGenesisTool(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.test_dir, 'genesis.json')
        self.db_path = os.path.join(self.test_dir, 'rollup_db')

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_sample_config_then_create(self):
        main(["sample-config", "--output", self.config_path])
        with open(self.config_path) as f:
            config = json.load(f)
        self.assertEqual(len(config['accounts']), 2)

        main(["create", "--config", self.config_path, "--output-db", self.db_path])

        rollup = RollupController(db_path=self.db_path)
        try:
            self.assertEqual(rollup.owner, bytes.fromhex(config['owner']))
            self.assertEqual(rollup.total_accounts, 2)
            second = bytes.fromhex(config['accounts'][1]['identity'])
            index = rollup.account_indices(second)
            self.assertEqual(rollup.accounts(index).balance, 500 * TOKEN_UNIT)
        finally:
            rollup.close()

    def test_returns_state_root(self):
        with open(self.config_path, 'w') as f:
            json.dump({
                "owner": "0f" * 20,
                "accounts": [{"identity": "a1" * 20, "public_key_hash": "11" * 32, "balance": 3}],
            }, f)

        root = create_genesis_state(self.config_path, self.db_path)

        rollup = RollupController(db_path=self.db_path)
        try:
            self.assertEqual(rollup.current_state_root, root)
            self.assertEqual(rollup.accounts(1).balance, 3 * TOKEN_UNIT)
        finally:
            rollup.close()

    def test_failed_genesis_removes_output(self):
        entry = {"identity": "a1" * 20, "public_key_hash": "11" * 32, "balance": 5}
        with open(self.config_path, 'w') as f:
            json.dump({"owner": "0f" * 20, "accounts": [entry, entry]}, f)

        with self.assertRaises(AccountExists):
            create_genesis_state(self.config_path, self.db_path)
        self.assertFalse(os.path.exists(self.db_path))

        # a corrected config can be applied to the same path
        with open(self.config_path, 'w') as f:
            json.dump({"owner": "0f" * 20, "accounts": [entry]}, f)
        self.assertIsNotNone(create_genesis_state(self.config_path, self.db_path))

    def test_refuses_existing_output(self):
        os.makedirs(self.db_path)
        with open(self.config_path, 'w') as f:
            json.dump({"owner": "0f" * 20}, f)
        self.assertIsNone(create_genesis_state(self.config_path, self.db_path))


if __name__ == '__main__':
    unittest.main()
