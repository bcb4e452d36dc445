from collections import namedtuple

DEPOSIT = "deposit"
WITHDRAWAL = "withdrawal"
DISPUTE = "dispute"
RESOLVE = "resolve"
CHARGEBACK = "chargeback"

FUNDABLE_KINDS = {DEPOSIT, WITHDRAWAL}
DISPUTE_KINDS = {DISPUTE, RESOLVE, CHARGEBACK}
TRANSACTION_KINDS = FUNDABLE_KINDS | DISPUTE_KINDS

# amounts are integer ten-thousandths of a currency unit
MONEY_SCALE = 10000
MONEY_MAX = 2 ** 63 - 1

Transaction = namedtuple("Transaction", ["kind", "client_id", "tx_id", "amount"], defaults=[None])

ClosingBalance = namedtuple("ClosingBalance", ["client_id", "available", "held", "total", "locked"])


class BalanceOverflowError(ArithmeticError):
    pass


class Account:
    def __init__(self, client_id):
        self.client_id = client_id
        self.transactions = []
        self.fundable = {}

    def add_transaction(self, tx):
        self.transactions.append(tx)
        # a reused id keeps pointing at the first deposit/withdrawal that carried it
        if tx.kind in FUNDABLE_KINDS:
            self.fundable.setdefault(tx.tx_id, tx)

    def find(self, tx_id):
        return self.fundable.get(tx_id)


class BalanceCalculator:
    FLAG_DISPUTE = 4
    FLAG_RESOLVE = 8
    FLAG_CHARGEBACK = 16

    def __init__(self, on_reject=None):
        self.on_reject = on_reject

    def replay(self, account):
        state = {"available": 0, "held": 0, "locked": False}
        tx_flags = {}
        # only transactions that arrived earlier can be referenced by a dispute
        seen = {}

        for tx in account.transactions:
            if state["locked"]:
                self.reject("account is locked", tx)
                continue

            if tx.kind in FUNDABLE_KINDS:
                seen.setdefault(tx.tx_id, tx)

            if tx.kind == DEPOSIT:
                self.apply_deposit(state, tx)
            elif tx.kind == WITHDRAWAL:
                self.apply_withdrawal(state, tx)
            elif tx.kind == DISPUTE:
                self.apply_dispute(state, tx_flags, seen, tx)
            elif tx.kind == RESOLVE:
                self.apply_resolve(state, tx_flags, seen, tx)
            elif tx.kind == CHARGEBACK:
                self.apply_chargeback(state, tx_flags, seen, tx)
            else:
                raise ValueError(f"unknown transaction kind {tx.kind!r}")

        available = state["available"]
        held = state["held"]
        return ClosingBalance(
            client_id=account.client_id,
            available=available,
            held=held,
            total=self.checked(available + held, account.client_id),
            locked=state["locked"],
        )

    def apply_deposit(self, state, tx):
        state["available"] = self.checked(state["available"] + tx.amount, tx.client_id)

    def apply_withdrawal(self, state, tx):
        if tx.amount > state["available"]:
            self.reject("nsf", tx)
            return

        state["available"] -= tx.amount

    def apply_dispute(self, state, tx_flags, seen, tx):
        disputed = self.find_deposit(seen, tx)
        if disputed is None:
            return

        flags = tx_flags.get(tx.tx_id, 0)
        if flags & self.FLAG_CHARGEBACK:
            self.reject("tx is charged back", tx)
            return

        if flags & self.FLAG_RESOLVE:
            self.reject("tx is resolved", tx)
            return

        if flags & self.FLAG_DISPUTE:
            self.reject("tx is already disputed", tx)
            return

        state["held"] = self.checked(state["held"] + disputed.amount, tx.client_id)
        state["available"] = self.checked(state["available"] - disputed.amount, tx.client_id)
        tx_flags[tx.tx_id] = flags | self.FLAG_DISPUTE

    def apply_resolve(self, state, tx_flags, seen, tx):
        disputed = self.find_deposit(seen, tx)
        if disputed is None:
            return

        flags = tx_flags.get(tx.tx_id, 0)
        if not flags & self.FLAG_DISPUTE:
            self.reject("tx is not disputed", tx)
            return

        if flags & self.FLAG_CHARGEBACK:
            self.reject("tx is charged back", tx)
            return

        if flags & self.FLAG_RESOLVE:
            self.reject("tx is already resolved", tx)
            return

        state["held"] -= disputed.amount
        state["available"] = self.checked(state["available"] + disputed.amount, tx.client_id)
        tx_flags[tx.tx_id] = flags | self.FLAG_RESOLVE

    def apply_chargeback(self, state, tx_flags, seen, tx):
        disputed = self.find_deposit(seen, tx)
        if disputed is None:
            return

        flags = tx_flags.get(tx.tx_id, 0)
        if not flags & self.FLAG_DISPUTE:
            self.reject("tx is not disputed", tx)
            return

        if flags & self.FLAG_CHARGEBACK:
            self.reject("tx is already charged back", tx)
            return

        if flags & self.FLAG_RESOLVE:
            self.reject("tx is resolved", tx)
            return

        state["held"] -= disputed.amount
        state["locked"] = True
        tx_flags[tx.tx_id] = flags | self.FLAG_CHARGEBACK

    def find_deposit(self, seen, tx):
        referenced = seen.get(tx.tx_id)
        if referenced is None:
            self.reject("tx not found", tx)
            return None

        if referenced.kind != DEPOSIT:
            self.reject("tx is not a deposit", tx)
            return None

        return referenced

    def reject(self, message, tx):
        if self.on_reject is not None:
            self.on_reject(message, tx)

    def checked(self, value, client_id):
        if abs(value) > MONEY_MAX:
            raise BalanceOverflowError(f"client_id {client_id} balance out of range: {value}")
        return value


class Ledger:
    def __init__(self, calculator=None):
        self.accounts = {}
        self.calculator = calculator if calculator is not None else BalanceCalculator()

    def record(self, tx):
        account = self.accounts.get(tx.client_id)
        if account is None:
            account = self.accounts[tx.client_id] = Account(tx.client_id)
        account.add_transaction(tx)

    def find(self, client_id, tx_id):
        account = self.accounts.get(client_id)
        if account is None:
            return None
        return account.find(tx_id)

    def account(self, client_id):
        return self.accounts.get(client_id)

    def client_ids(self):
        return list(self.accounts)

    def closing_balance(self, client_id):
        account = self.accounts.get(client_id)
        if account is None:
            return None
        return self.calculator.replay(account)

    def closing_balances(self):
        return [self.calculator.replay(account) for account in self.accounts.values()]
