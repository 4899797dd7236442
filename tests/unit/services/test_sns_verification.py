"""Tests for SNS signature verification using a locally signed certificate"""

import pytest
import requests
from unittest.mock import Mock

from services.sns_verification import (
    SnsMessageVerifier,
    SignatureVerificationError,
    canonical_string,
    validate_cert_url,
)
from tests.fixtures.aws_fixtures import SnsSigner, notification, ses_event


@pytest.fixture(scope='module')
def signer():
    return SnsSigner()


class TestCanonicalString:

    def test_notification_without_subject(self):
        message = {'Type': 'Notification', 'Message': 'm', 'MessageId': 'id', 'Timestamp': 't', 'TopicArn': 'arn'}
        assert canonical_string(message) == (
            b'Message\nm\nMessageId\nid\nTimestamp\nt\nTopicArn\narn\nType\nNotification\n'
        )

    def test_notification_with_subject(self):
        message = {'Type': 'Notification', 'Message': 'm', 'MessageId': 'id', 'Subject': 's',
                   'Timestamp': 't', 'TopicArn': 'arn'}
        assert b'Subject\ns\nTimestamp' in canonical_string(message)

    def test_confirmation_requires_token(self):
        message = {'Type': 'SubscriptionConfirmation', 'Message': 'm', 'MessageId': 'id',
                   'SubscribeURL': 'https://sns', 'Timestamp': 't', 'TopicArn': 'arn'}
        with pytest.raises(SignatureVerificationError):
            canonical_string(message)


class TestValidateCertUrl:

    @pytest.mark.parametrize('url', [
        'https://sns.us-east-1.amazonaws.com/cert.pem',
        'https://sns.cn-north-1.amazonaws.com.cn/cert.pem',
    ])
    def test_accepts_sns_hosts(self, url):
        assert validate_cert_url(url) == url

    @pytest.mark.parametrize('url', [
        None,
        'http://sns.us-east-1.amazonaws.com/cert.pem',
        'https://sns.us-east-1.amazonaws.com.evil.example.com/cert.pem',
        'https://example.com/cert.pem',
    ])
    def test_rejects_other_urls(self, url):
        with pytest.raises(SignatureVerificationError):
            validate_cert_url(url)


class TestSnsMessageVerifier:

    @pytest.fixture
    def message(self):
        return notification(ses_event('Delivery', 5))

    @pytest.mark.parametrize('version', ['1', '2'])
    def test_valid_signature(self, signer, message, version):
        SnsMessageVerifier(http=signer.http()).verify(signer.sign(message, version=version))

    def test_tampered_message(self, signer, message):
        signed = signer.sign(message)
        signed['Message'] = signed['Message'].replace('Delivery', 'Bounce')

        with pytest.raises(SignatureVerificationError):
            SnsMessageVerifier(http=signer.http()).verify(signed)

    def test_signature_version_mismatch(self, signer, message):
        signed = signer.sign(message, version='1')
        signed['SignatureVersion'] = '2'

        with pytest.raises(SignatureVerificationError):
            SnsMessageVerifier(http=signer.http()).verify(signed)

    def test_unsupported_version(self, signer, message):
        signed = signer.sign(message)
        signed['SignatureVersion'] = '3'

        with pytest.raises(SignatureVerificationError):
            SnsMessageVerifier(http=signer.http()).verify(signed)

    def test_invalid_base64(self, signer, message):
        signed = signer.sign(message)
        signed['Signature'] = '%%%'

        with pytest.raises(SignatureVerificationError):
            SnsMessageVerifier(http=signer.http()).verify(signed)

    def test_certificate_is_cached(self, signer, message):
        http = signer.http()
        verifier = SnsMessageVerifier(http=http)

        verifier.verify(signer.sign(message))
        verifier.verify(signer.sign(message))

        assert http.get.call_count == 1

    def test_certificate_download_failure(self, signer, message):
        http = Mock()
        http.get.side_effect = requests.ConnectionError('unreachable')

        with pytest.raises(SignatureVerificationError):
            SnsMessageVerifier(http=http).verify(signer.sign(message))

    def test_certificate_not_pem(self, signer, message):
        http = signer.http()
        http.get.return_value.content = b'not a certificate'

        with pytest.raises(SignatureVerificationError):
            SnsMessageVerifier(http=http).verify(signer.sign(message))

    def test_rejects_non_object(self):
        with pytest.raises(SignatureVerificationError):
            SnsMessageVerifier(http=Mock()).verify(['not', 'a', 'dict'])

    def test_default_client_is_requests(self, signer, message, mocker):
        get = mocker.patch('services.sns_verification.requests.get', return_value=signer.http().get.return_value)

        SnsMessageVerifier(timeout=3).verify(signer.sign(message))

        get.assert_called_once_with('https://sns.eu-west-1.amazonaws.com/SimpleNotificationService-test.pem', timeout=3)
