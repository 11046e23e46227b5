"""Tests for parsing the STK push callback envelope."""

import pytest

from checkout.payment.callback import Confirmation, MalformedCallback, parse_stk_callback


class TestParseSuccessfulCallback:
    def test_extracts_correlation_token(self, callback_payload):
        confirmation = parse_stk_callback(callback_payload("ws_CO_191220191020363925"))
        assert confirmation.correlation_token == "ws_CO_191220191020363925"

    def test_success_result(self, callback_payload):
        confirmation = parse_stk_callback(callback_payload("ws_CO_1"))
        assert confirmation.result_code == 0
        assert confirmation.succeeded is True

    def test_metadata_items_become_a_mapping(self, callback_payload):
        confirmation = parse_stk_callback(callback_payload("ws_CO_1", receipt="NLJ7RT61SV", amount=1))
        assert confirmation.metadata["Amount"] == 1
        assert confirmation.metadata["PhoneNumber"] == 254722000000
        assert confirmation.receipt_number == "NLJ7RT61SV"

    def test_missing_receipt_number(self, callback_payload):
        confirmation = parse_stk_callback(callback_payload("ws_CO_1", receipt=None))
        assert confirmation.receipt_number is None

    def test_merchant_request_id(self, callback_payload):
        confirmation = parse_stk_callback(callback_payload("ws_CO_1"))
        assert confirmation.merchant_request_id == "29115-34620561-1"


class TestParseFailedCallback:
    def test_failure_has_no_metadata(self, callback_payload):
        confirmation = parse_stk_callback(callback_payload("ws_CO_2", result_code=1032))
        assert confirmation.succeeded is False
        assert confirmation.result_code == 1032
        assert confirmation.result_desc == "Request cancelled by user"
        assert confirmation.metadata == {}
        assert confirmation.receipt_number is None


class TestMalformedCallback:
    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            "not json",
            {},
            {"Body": {}},
            {"Body": {"stkCallback": {"ResultCode": 0}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "", "ResultCode": 0}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1", "ResultCode": "zero"}}},
        ],
    )
    def test_rejects_unrecognisable_envelopes(self, payload):
        with pytest.raises(MalformedCallback):
            parse_stk_callback(payload)


class TestConfirmation:
    def test_non_zero_result_is_not_success(self):
        assert Confirmation(correlation_token="ws_CO_1", result_code=2001).succeeded is False

    def test_blank_receipt_is_treated_as_missing(self):
        confirmation = Confirmation(
            correlation_token="ws_CO_1",
            result_code=0,
            metadata={"MpesaReceiptNumber": ""},
        )
        assert confirmation.receipt_number is None
