"""Tests for parser module."""

from decimal import Decimal

from parser.purchases import (
    QUOTE_MINTS,
    WSOL_MINT,
    balance_changes,
    extract_purchases,
    parse_ui_amount,
)

WALLET = "wallet_w"
OTHER = "wallet_other"
MINT = "mint_m"


def token_balance(owner, mint, ui_amount, decimals=6, account_index=1):
    """Build a pre/post token balance entry as returned by getTransaction."""
    ui_string = str(ui_amount)
    raw = int(Decimal(ui_string).scaleb(decimals))
    return {
        "accountIndex": account_index,
        "mint": mint,
        "owner": owner,
        "uiTokenAmount": {
            "amount": str(raw),
            "decimals": decimals,
            "uiAmount": float(ui_string),
            "uiAmountString": ui_string,
        },
    }


def make_record(pre, post, err=None, block_time=1700000000, signature="sig_1"):
    return {
        "blockTime": block_time,
        "slot": 1,
        "meta": {
            "err": err,
            "preTokenBalances": pre,
            "postTokenBalances": post,
        },
        "transaction": {"signatures": [signature]},
    }


class TestExtractPurchases:
    """Tests for extract_purchases."""

    def test_balance_increase_is_purchase(self):
        """Test post=150 / pre=100 yields one purchase."""
        record = make_record(
            pre=[token_balance(WALLET, MINT, 100)],
            post=[token_balance(WALLET, MINT, 150)],
        )

        events = extract_purchases(record, WALLET)

        assert len(events) == 1
        assert events[0].token_mint == MINT
        assert events[0].wallet == WALLET
        assert events[0].amount == Decimal(50)
        assert events[0].signature == "sig_1"
        assert events[0].observed_at == 1700000000

    def test_balance_decrease_is_not_purchase(self):
        """Test post=100 / pre=150 yields nothing."""
        record = make_record(
            pre=[token_balance(WALLET, MINT, 150)],
            post=[token_balance(WALLET, MINT, 100)],
        )

        assert extract_purchases(record, WALLET) == []

    def test_unchanged_balance_is_not_purchase(self):
        record = make_record(
            pre=[token_balance(WALLET, MINT, 100)],
            post=[token_balance(WALLET, MINT, 100)],
        )

        assert extract_purchases(record, WALLET) == []

    def test_amounts_compared_numerically_not_as_text(self):
        """Test 9 -> 10 is an increase even though "9" > "10" as text."""
        record = make_record(
            pre=[token_balance(WALLET, MINT, 9)],
            post=[token_balance(WALLET, MINT, 10)],
        )

        events = extract_purchases(record, WALLET)

        assert [e.token_mint for e in events] == [MINT]

    def test_new_token_account_is_purchase(self):
        """Test a mint absent from pre balances counts from zero."""
        record = make_record(
            pre=[],
            post=[token_balance(WALLET, MINT, "0.5")],
        )

        events = extract_purchases(record, WALLET)

        assert len(events) == 1
        assert events[0].amount == Decimal("0.5")

    def test_other_owners_ignored(self):
        """Test balances owned by other accounts are not attributed to the wallet."""
        record = make_record(
            pre=[token_balance(OTHER, MINT, 0)],
            post=[token_balance(OTHER, MINT, 500)],
        )

        assert extract_purchases(record, WALLET) == []

    def test_missing_metadata_yields_nothing(self):
        """Test absent meta or post balances is not an error."""
        assert extract_purchases(None, WALLET) == []
        assert extract_purchases({}, WALLET) == []
        assert extract_purchases({"meta": None}, WALLET) == []
        assert extract_purchases({"meta": {"err": None}}, WALLET) == []
        assert extract_purchases({"meta": {"err": None, "postTokenBalances": []}}, WALLET) == []

    def test_failed_transaction_yields_nothing(self):
        record = make_record(
            pre=[token_balance(WALLET, MINT, 100)],
            post=[token_balance(WALLET, MINT, 150)],
            err={"InstructionError": [0, "Custom"]},
        )

        assert extract_purchases(record, WALLET) == []

    def test_ignored_mints_skipped(self):
        """Test quote mints are not reported as purchases when ignored."""
        record = make_record(
            pre=[token_balance(WALLET, WSOL_MINT, 1, decimals=9, account_index=1)],
            post=[
                token_balance(WALLET, WSOL_MINT, 2, decimals=9, account_index=1),
                token_balance(WALLET, MINT, 10, account_index=2),
            ],
        )

        events = extract_purchases(record, WALLET, ignore_mints=QUOTE_MINTS)

        assert [e.token_mint for e in events] == [MINT]

    def test_multiple_mints(self):
        record = make_record(
            pre=[token_balance(WALLET, "mint_a", 5, account_index=1)],
            post=[
                token_balance(WALLET, "mint_a", 6, account_index=1),
                token_balance(WALLET, "mint_b", 1, account_index=2),
                token_balance(WALLET, "mint_c", 0, account_index=3),
            ],
        )

        mints = {e.token_mint for e in extract_purchases(record, WALLET)}

        assert mints == {"mint_a", "mint_b"}

    def test_missing_block_time_uses_current_time(self):
        record = make_record(
            pre=[],
            post=[token_balance(WALLET, MINT, 1)],
            block_time=None,
        )

        events = extract_purchases(record, WALLET)

        assert events[0].observed_at > 0


class TestBalanceChanges:
    """Tests for balance_changes."""

    def test_sums_accounts_of_same_mint(self):
        """Test two token accounts of one owner and mint are summed."""
        record = make_record(
            pre=[token_balance(WALLET, MINT, 10, account_index=1)],
            post=[
                token_balance(WALLET, MINT, 10, account_index=1),
                token_balance(WALLET, MINT, 5, account_index=2),
            ],
        )

        changes = balance_changes(record, WALLET)

        assert changes[MINT] == (Decimal(10), Decimal(15))


class TestParseUiAmount:
    """Tests for parse_ui_amount."""

    def test_prefers_ui_amount_string(self):
        amount = parse_ui_amount({"uiAmountString": "1.000000001", "uiAmount": 1.0})
        assert amount == Decimal("1.000000001")

    def test_falls_back_to_ui_amount(self):
        assert parse_ui_amount({"uiAmount": 2.5}) == Decimal("2.5")

    def test_falls_back_to_raw_amount(self):
        """Test raw amount is scaled by decimals."""
        assert parse_ui_amount({"amount": "1500000", "decimals": 6, "uiAmount": None}) == Decimal("1.5")

    def test_unusable_values(self):
        assert parse_ui_amount(None) is None
        assert parse_ui_amount({}) is None
        assert parse_ui_amount({"uiAmountString": "not-a-number"}) is None
