import csv
import sys
from decimal import Decimal, ROUND_DOWN, InvalidOperation

from payment_ledger import (
    BalanceCalculator,
    BalanceOverflowError,
    FUNDABLE_KINDS,
    Ledger,
    MONEY_MAX,
    MONEY_SCALE,
    TRANSACTION_KINDS,
    Transaction,
)

MONEY_PLACES = Decimal(1).scaleb(-4)


class PaymentEngine:
    DEFAULT_FIELD_ORDER = ["type", "client", "tx", "amount"]
    REQUIRED_FIELDS = {"type", "client", "tx"}

    def __init__(self, filename, ledger=None):
        self.filename = filename
        self.ledger = ledger if ledger is not None else Ledger(BalanceCalculator(on_reject=self.log_rejection))

        self.type_field_idx = 0
        self.client_field_idx = 1
        self.tx_field_idx = 2
        self.amount_field_idx = 3

    def read_transaction_data(self):
        if not self.filename:
            raise RuntimeError("no filename to read has been set. aborting.")
        with open(self.filename, newline="", encoding="utf-8-sig") as file:
            csvreader = (record for record in csv.reader(file) if record)
            first = next(csvreader, None)
            if first is None:
                return

            if self.is_header(first):
                self.discover_field_order(first)
            else:
                self.discover_field_order(self.DEFAULT_FIELD_ORDER)
                self.process_record(first)

            for record in csvreader:
                self.process_record(record)

    def is_header(self, record):
        names = {field.strip().lower() for field in record}
        return self.REQUIRED_FIELDS <= names

    def discover_field_order(self, header):
        names = [field.strip().lower() for field in header]
        missing = self.REQUIRED_FIELDS.difference(names)
        if missing:
            raise RuntimeError(f"header is missing required fields: {', '.join(sorted(missing))}")

        self.type_field_idx = names.index("type")
        self.client_field_idx = names.index("client")
        self.tx_field_idx = names.index("tx")
        self.amount_field_idx = names.index("amount") if "amount" in names else None

    def process_record(self, record):
        tx = self.attempt_normalize_record(record)
        if tx is None:
            return

        if not self.validate_transaction(tx):
            return

        self.ledger.record(tx)

    def attempt_normalize_record(self, record):
        try:
            return self.normalize_record(record)
        except (ValueError, InvalidOperation) as e:
            self.error_log(f"field format error: {e} while attempting to normalize row like: {repr(record)}")
        except IndexError as e:
            self.error_log(f"{e} while attempting to normalize row like: {repr(record)}")
        return None

    def normalize_record(self, record):
        record_type = record[self.type_field_idx].strip().lower()
        client_id = int(record[self.client_field_idx].strip())
        tx_id = int(record[self.tx_field_idx].strip())
        amount = None
        if record_type in FUNDABLE_KINDS:
            amount = self.get_normalized_amount(record)
        return Transaction(record_type, client_id, tx_id, amount)

    def get_normalized_amount(self, record):
        idx = self.amount_field_idx
        if idx is None or idx >= len(record) or not record[idx].strip():
            return None

        amount = Decimal(record[idx].strip())
        if not amount.is_finite():
            raise ValueError(f"amount is not a number: {record[idx].strip()}")
        if amount < 0:
            raise ValueError(f"amount must not be negative: {amount}")

        # anything past 4 decimal places is truncated
        units = int(amount.quantize(MONEY_PLACES, rounding=ROUND_DOWN) * MONEY_SCALE)
        if units > MONEY_MAX:
            raise ValueError(f"amount out of range: {amount}")
        return units

    def validate_transaction(self, tx):
        if tx.kind not in TRANSACTION_KINDS:
            self.error_log("invalid record_type", tx.tx_id, tx.client_id, tx.kind)
            return False

        if not (0 <= tx.tx_id <= 4294967295):
            self.error_log("invalid tx_id", tx.tx_id, tx.client_id, tx.kind)
            return False

        if not (0 <= tx.client_id <= 65535):
            self.error_log("invalid client_id", tx.tx_id, tx.client_id, tx.kind)
            return False

        if tx.kind in FUNDABLE_KINDS and tx.amount is None:
            self.error_log("missing amount", tx.tx_id, tx.client_id, tx.kind)
            return False

        return True

    def log_rejection(self, message, tx):
        self.error_log(message, tx.tx_id, tx.client_id, tx.kind, tx.amount)

    def error_log(self, message, tx_id=None, client_id=None, record_type=None, amount=None):
        if tx_id is not None and client_id is not None and record_type is not None:
            formatted_prefix = f"tx_id {tx_id}, client_id {client_id}, failed to apply {record_type}"
            amount_detail = ""
            if amount:
                amount_detail = f" of ${format_money(amount)}"
            print(f"{formatted_prefix}{amount_detail}: {message}", file=sys.stderr)
        else:
            print(f"transaction error: {message}", file=sys.stderr)

    def get_account_totals(self):
        self.read_transaction_data()
        return {balance.client_id: balance for balance in self.ledger.closing_balances()}

    def generate_output(self):
        account_totals = self.get_account_totals()
        csvwriter = csv.writer(sys.stdout, lineterminator="\n")
        fieldnames = ['client', 'available', 'held', 'total', 'locked']
        csvwriter.writerow(fieldnames)
        for client_id in sorted(account_totals):
            balance = account_totals[client_id]
            csvwriter.writerow([
                client_id,
                format_money(balance.available),
                format_money(balance.held),
                format_money(balance.total),
                str(balance.locked).lower(),
            ])


def format_money(units):
    return format(Decimal(units).scaleb(-4), "f")


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    if len(argv) != 1:
        print("usage: payment_engine.py <transactions.csv>", file=sys.stderr)
        return 2

    try:
        PaymentEngine(argv[0]).generate_output()
    except (OSError, UnicodeDecodeError, csv.Error, RuntimeError, BalanceOverflowError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
