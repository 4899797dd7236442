"""AWS test doubles for the template bucket, SES/SNS clients and SNS signing.

Provides:
- InMemoryS3: put/get/delete objects keyed by bucket and key
- make_ses_client / make_sns_client: MagicMocks with realistic responses
- SnsSigner: a self-signed certificate plus helpers that sign SNS messages
  the way Amazon does, for exercising the real verifier
"""

import base64
import io
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock

from botocore.exceptions import ClientError
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

from services.sns_verification import canonical_string

SIGNING_CERT_URL = 'https://sns.eu-west-1.amazonaws.com/SimpleNotificationService-test.pem'
TOPIC_ARN = 'arn:aws:sns:eu-west-1:123456789012:bulkmail-ses-events'


def client_error(code, operation='Operation'):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


class InMemoryS3:
    """Minimal S3 client covering the calls TemplateService makes"""

    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, **kwargs):
        self.objects[(Bucket, Key)] = Body
        return {'ETag': '"etag"'}

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise client_error('NoSuchKey', 'GetObject')
        return {'Body': io.BytesIO(self.objects[(Bucket, Key)])}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)
        return {}


def make_ses_client():
    ses = MagicMock()
    ses.get_send_quota.return_value = {
        'Max24HourSend': 200.0,
        'MaxSendRate': 1.0,
        'SentLast24Hours': 3.0,
    }
    ses.send_email.return_value = {'MessageId': 'ses-message-id'}
    ses.describe_configuration_set.return_value = {'ConfigurationSet': {'Name': 'bulkmail'}}
    return ses


def make_sns_client():
    sns = MagicMock()
    sns.create_topic.return_value = {'TopicArn': TOPIC_ARN}
    sns.subscribe.return_value = {'SubscriptionArn': 'pending confirmation'}
    return sns


class SnsSigner:
    """Signs SNS messages with a throwaway RSA key and self-signed certificate"""

    def __init__(self):
        self.key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, 'sns.amazonaws.com')])
        now = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=1))
            .sign(self.key, hashes.SHA256())
        )
        self.cert_pem = cert.public_bytes(serialization.Encoding.PEM)

    def http(self):
        """A requests-like client serving the certificate"""
        response = Mock(status_code=200, content=self.cert_pem)
        response.raise_for_status = Mock()
        http = Mock()
        http.get = Mock(return_value=response)
        return http

    def sign(self, message, version='1'):
        message = dict(message, SignatureVersion=version, SigningCertURL=SIGNING_CERT_URL)
        hash_cls = hashes.SHA1 if version == '1' else hashes.SHA256
        signature = self.key.sign(canonical_string(message), padding.PKCS1v15(), hash_cls())
        message['Signature'] = base64.b64encode(signature).decode('ascii')
        return message


def notification(ses_message, message_id='sns-message-1'):
    """An unsigned SNS Notification wrapping an SES event"""
    return {
        'Type': 'Notification',
        'MessageId': message_id,
        'TopicArn': TOPIC_ARN,
        'Message': json.dumps(ses_message),
        'Timestamp': '2026-01-05T10:00:00.000Z',
    }


def ses_event(notification_type, campaign_id, destination=('reader@example.com',), **sections):
    """An SES event as published by a configuration set"""
    event = {
        'eventType': notification_type,
        'mail': {
            'timestamp': '2026-01-05T09:59:58.000Z',
            'source': 'news@example.com',
            'sendingAccountId': '123456789012',
            'messageId': 'ses-message-id',
            'destination': list(destination),
            'tags': {'campaign_id': [str(campaign_id)]},
        },
    }
    event.update(sections)
    return event
