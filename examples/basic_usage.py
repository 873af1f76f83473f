"""
基础使用示例

使用 SQLite 演示分组配置、事务会话、命名参数查询和保存点。
"""

import os
import sys
import tempfile
from pathlib import Path

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db_runner import (
    GroupedConfig,
    TransactionalSession,
    TransactionFailed,
    close_all_data_sources,
    dict_rows,
    scalar,
)


def basic_usage_example():
    """基础使用示例"""
    work_dir = Path(tempfile.mkdtemp())
    config = GroupedConfig.from_mapping(
        {
            "demo": {
                "url": f"jdbc:sqlite:{work_dir / 'demo.db'}",
                "showSql": True,
                "showParams": True,
                "maxActive": 4,
            }
        }
    )

    with TransactionalSession.create("demo", config) as session:
        session.execute("CREATE TABLE account (id INTEGER PRIMARY KEY, owner TEXT, balance INTEGER)")
        session.execute_batch(
            "INSERT INTO account (owner, balance) VALUES (:owner, :balance)",
            [{"owner": "alice", "balance": 100}, {"owner": "bob", "balance": 50}],
        )

        # 转账：两条更新在同一个事务中
        def transfer(s):
            s.execute("UPDATE account SET balance = balance - :n WHERE owner = :from", {"n": 30, "from": "alice"})
            s.execute("UPDATE account SET balance = balance + :n WHERE owner = :to", {"n": 30, "to": "bob"})

        session.run_in_transaction(transfer)
        print("✅ 转账完成:", session.query("SELECT owner, balance FROM account ORDER BY id", dict_rows))

        # 失败的事务会被回滚
        def overdraw(s):
            s.execute("UPDATE account SET balance = balance - 1000 WHERE owner = 'alice'")
            raise ValueError("余额不足")

        try:
            session.run_in_transaction(overdraw)
        except TransactionFailed as e:
            print(f"❌ 事务已回滚: {e.cause}")

        # 保存点：只撤销保存点之后的操作
        session.begin_transaction()
        session.execute("INSERT INTO account (owner, balance) VALUES ('carol', 10)")
        savepoint = session.set_savepoint()
        session.execute("INSERT INTO account (owner, balance) VALUES ('dave', 20)")
        session.rollback(savepoint)

        total = session.query("SELECT COUNT(*) FROM account", scalar)
        print(f"📋 当前账户数: {total}")

    close_all_data_sources()


if __name__ == "__main__":
    basic_usage_example()
