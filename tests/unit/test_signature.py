"""
Unit tests for launch request HMAC verification
"""
import base64
import hashlib
import hmac
from urllib.parse import quote

from funding_pricer.security.signature import (
    compute_signature,
    extract_signed_query,
    split_signed_query,
    verify_signature,
)

SECRET = "test-client-secret"
BASE_URL = "https://app.example.com/api/auth/session-from-cafe24"
SIGNED_QUERY = "is_multi_shop=T&lang=ko_KR&mall_id=testmall&shop_no=1&timestamp=1772334000&user_id=admin&user_name=Admin&user_type=A"


def _signed_url(query=SIGNED_QUERY, secret=SECRET, encode=True):
    signature = compute_signature(query, secret)
    if encode:
        signature = quote(signature, safe="")
    return f"{BASE_URL}?{query}&hmac={signature}", signature


class TestComputeSignature:
    """Test the digest itself"""

    def test_matches_base64_hmac_sha256(self):
        """Digest is base64 of HMAC-SHA256 over the query bytes"""
        expected = base64.b64encode(
            hmac.new(SECRET.encode(), SIGNED_QUERY.encode(), hashlib.sha256).digest()
        ).decode()

        assert compute_signature(SIGNED_QUERY, SECRET) == expected

    def test_is_deterministic(self):
        assert compute_signature(SIGNED_QUERY, SECRET) == compute_signature(SIGNED_QUERY, SECRET)


class TestExtractSignedQuery:
    """Test cutting the signed part out of the raw URL"""

    def test_returns_everything_before_hmac(self):
        url, _ = _signed_url()
        assert extract_signed_query(url) == SIGNED_QUERY

    def test_keeps_original_percent_encoding(self):
        query = "mall_id=testmall&user_name=%ED%99%8D%EA%B8%B8%EB%8F%99&timestamp=1772334000"
        url = f"{BASE_URL}?{query}&hmac=abc%3D"

        assert extract_signed_query(url) == query

    def test_returns_none_without_hmac(self):
        assert extract_signed_query(f"{BASE_URL}?{SIGNED_QUERY}") is None

    def test_split_keeps_raw_signature(self):
        url = f"{BASE_URL}?{SIGNED_QUERY}&hmac=abc%2Bdef%3D"

        assert split_signed_query(url) == (SIGNED_QUERY, "abc%2Bdef%3D")

    def test_split_exposes_parameters_after_hmac(self):
        url = f"{BASE_URL}?{SIGNED_QUERY}&hmac=abc%3D&mall_id=othermall"

        signed_query, signature = split_signed_query(url)

        assert signed_query == SIGNED_QUERY
        assert signature == "abc%3D&mall_id=othermall"

    def test_split_returns_none_without_hmac(self):
        assert split_signed_query(f"{BASE_URL}?{SIGNED_QUERY}") is None


class TestVerifySignature:
    """Test verify_signature"""

    def test_valid_url_encoded_signature(self):
        url, signature = _signed_url()
        assert verify_signature(url, signature, SECRET) is True

    def test_valid_decoded_signature(self):
        """Frameworks hand over the hmac parameter already decoded"""
        url, _ = _signed_url()
        decoded = compute_signature(SIGNED_QUERY, SECRET)

        assert verify_signature(url, decoded, SECRET) is True

    def test_same_input_same_answer(self):
        url, signature = _signed_url()
        results = {verify_signature(url, signature, SECRET) for _ in range(3)}
        assert results == {True}

    def test_mutated_parameter_is_rejected(self):
        url, signature = _signed_url()
        tampered = url.replace("mall_id=testmall", "mall_id=othermall")

        assert verify_signature(tampered, signature, SECRET) is False

    def test_reordered_parameters_are_rejected(self):
        """The digest covers the query in the order it was sent"""
        _, signature = _signed_url()
        reordered = "mall_id=testmall&is_multi_shop=T&lang=ko_KR&shop_no=1&timestamp=1772334000&user_id=admin&user_name=Admin&user_type=A"
        url = f"{BASE_URL}?{reordered}&hmac={signature}"

        assert verify_signature(url, signature, SECRET) is False

    def test_wrong_secret_is_rejected(self):
        url, signature = _signed_url()
        assert verify_signature(url, signature, "another-secret") is False

    def test_forged_signature_is_rejected(self):
        url, _ = _signed_url()
        assert verify_signature(url, "Zm9yZ2Vk", SECRET) is False

    def test_missing_signature(self):
        url, _ = _signed_url()
        assert verify_signature(url, None, SECRET) is False
        assert verify_signature(url, "", SECRET) is False

    def test_missing_secret(self):
        url, signature = _signed_url()
        assert verify_signature(url, signature, "") is False

    def test_url_without_hmac_parameter(self):
        _, signature = _signed_url()
        assert verify_signature(f"{BASE_URL}?{SIGNED_QUERY}", signature, SECRET) is False
