"""
tests/test_concurrency.py

Concurrency safety of claim and withdraw.

Same claimant from many threads: exactly one payout, the rest AlreadyClaimed.
Different claimants in parallel: every one paid, counter matches.
Claims racing withdrawals: the vault never overdraws.

Run:
    pytest tests/test_concurrency.py -v --tb=short
"""

import threading

from claimgate import AlreadyClaimed
from claimgate.core.exceptions import InsufficientFunds


def _run_all(targets):
    threads = [threading.Thread(target=t) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


class TestConcurrency:

    def test_same_claimant_paid_once(self, deployment):
        claimant, account = deployment.new_claimant()
        signature = deployment.signature(claimant, 100)
        successes, rejections, errors = [], [], []

        def attempt():
            try:
                deployment.engine.claim(claimant, 100, signature, account)
                successes.append(1)
            except AlreadyClaimed:
                rejections.append(1)
            except Exception as e:
                errors.append(repr(e))

        _run_all([attempt] * 8)

        assert errors == []
        assert len(successes) == 1
        assert len(rejections) == 7
        assert deployment.ledger.balance(account) == 100
        assert deployment.engine.get_state().total_claimed == 100

    def test_different_claimants_all_paid(self, deployment):
        claimants = [deployment.new_claimant() for _ in range(10)]
        errors = []

        def make(claimant, account):
            def attempt():
                try:
                    deployment.claim(claimant, account, 50)
                except Exception as e:
                    errors.append(repr(e))
            return attempt

        _run_all([make(c, a) for c, a in claimants])

        assert errors == []
        assert deployment.engine.get_state().total_claimed == 500
        assert deployment.engine.vault_balance() == 500
        for claimant, account in claimants:
            assert deployment.engine.is_claimed(claimant)
            assert deployment.ledger.balance(account) == 50

    def test_claims_and_withdrawals_never_overdraw(self, deployment):
        claimants = [deployment.new_claimant() for _ in range(6)]
        destination = deployment.owner_account()
        paid, withdrawn, errors = [], [], []

        def claim(claimant, account):
            def attempt():
                try:
                    deployment.claim(claimant, account, 200)
                    paid.append(200)
                except InsufficientFunds:
                    pass
                except Exception as e:
                    errors.append(repr(e))
            return attempt

        def withdraw():
            try:
                deployment.engine.withdraw(deployment.owner_id, 300, destination)
                withdrawn.append(300)
            except InsufficientFunds:
                pass
            except Exception as e:
                errors.append(repr(e))

        _run_all([claim(c, a) for c, a in claimants] + [withdraw] * 3)

        assert errors == []
        vault = deployment.engine.vault_balance()
        assert vault >= 0
        assert vault + sum(paid) + sum(withdrawn) == 1000
        assert deployment.engine.get_state().total_claimed == sum(paid)
