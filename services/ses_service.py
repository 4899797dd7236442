"""
SES Service
Manages a user's SES credentials and the AWS resources that route their
delivery events back to the webhook: an SNS topic with an HTTP(S)
subscription to /api/hooks/{user_uuid}, and a configuration set whose event
destination publishes to that topic.
"""

from typing import Callable, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from mail_database import SesKeys
from repositories.ses_keys_repository import SesKeysRepository
from services.enums import CONFIGURATION_SET_EVENT_TYPES
from logging_config import get_logger

logger = get_logger(__name__)


class SesKeysNotFoundError(Exception):
    """The user has not registered SES keys"""
    pass


class SesKeysExistError(Exception):
    """The user already has SES keys"""
    pass


class InvalidSesKeysError(Exception):
    """SES rejected the supplied credentials"""
    pass


class SesError(Exception):
    """An SES or SNS call failed"""
    pass


def _error_code(error: ClientError) -> Optional[str]:
    return error.response.get('Error', {}).get('Code')


class SesService:
    """Service for SES key management and quota"""

    def __init__(
        self,
        ses_keys_repository: SesKeysRepository,
        ses_client_factory: Callable,
        sns_client_factory: Callable,
        app_url: str,
        topic_name: str,
        configuration_set_name: str
    ):
        self.ses_keys_repository = ses_keys_repository
        self.ses_client_factory = ses_client_factory
        self.sns_client_factory = sns_client_factory
        self.app_url = app_url.rstrip('/')
        self.topic_name = topic_name
        self.configuration_set_name = configuration_set_name

    def hook_url(self, user_uuid: str) -> str:
        return f"{self.app_url}/api/hooks/{user_uuid}"

    def get_keys(self, user_id: int) -> SesKeys:
        """
        Raises:
            SesKeysNotFoundError: If the user has no keys
        """
        keys = self.ses_keys_repository.get_for_user(user_id)
        if keys is None:
            raise SesKeysNotFoundError(f"SES keys not found for user {user_id}")
        return keys

    def _ses(self, keys):
        return self.ses_client_factory(keys.access_key, keys.secret_key, keys.region)

    def create_keys(self, user, access_key: str, secret_key: str, region: str) -> SesKeys:
        """
        Validate and store keys, then provision the event topic and configuration set.

        Raises:
            SesKeysExistError: If keys are already registered
            InvalidSesKeysError: If SES rejects the keys
            SesError: If provisioning fails; nothing is stored in that case
        """
        if self.ses_keys_repository.get_for_user(user.id) is not None:
            raise SesKeysExistError("SES keys already exist")

        ses = self.ses_client_factory(access_key, secret_key, region)
        try:
            ses.get_send_quota()
        except (ClientError, BotoCoreError) as e:
            logger.warning("SES keys rejected", user_id=user.id, error=str(e))
            raise InvalidSesKeysError("SES keys are incorrect") from e

        keys = self.ses_keys_repository.create(
            user_id=user.id,
            access_key=access_key,
            secret_key=secret_key,
            region=region
        )

        try:
            sns = self.sns_client_factory(access_key, secret_key, region)
            topic_arn = sns.create_topic(Name=self.topic_name)['TopicArn']
            endpoint = self.hook_url(user.uuid)
            sns.subscribe(
                TopicArn=topic_arn,
                Protocol='https' if endpoint.startswith('https://') else 'http',
                Endpoint=endpoint
            )
            self._create_configuration_set(ses, topic_arn)
        except (ClientError, BotoCoreError, KeyError) as e:
            logger.error("Unable to provision SES event routing", user_id=user.id, error=str(e))
            self.ses_keys_repository.rollback()
            raise SesError("Unable to set up SES event notifications") from e

        self.ses_keys_repository.commit()
        logger.info("SES keys created", user_id=user.id, region=region)
        return keys

    def _create_configuration_set(self, ses, topic_arn: str) -> None:
        try:
            ses.create_configuration_set(ConfigurationSet={'Name': self.configuration_set_name})
        except ClientError as e:
            if _error_code(e) != 'ConfigurationSetAlreadyExists':
                raise

        try:
            ses.create_configuration_set_event_destination(
                ConfigurationSetName=self.configuration_set_name,
                EventDestination={
                    'Name': f"{self.configuration_set_name}-sns",
                    'Enabled': True,
                    'MatchingEventTypes': CONFIGURATION_SET_EVENT_TYPES,
                    'SNSDestination': {'TopicARN': topic_arn},
                }
            )
        except ClientError as e:
            if _error_code(e) != 'EventDestinationAlreadyExists':
                raise

    def delete_keys(self, user_id: int) -> None:
        """
        Remove the configuration set, then the stored keys.

        Raises:
            SesKeysNotFoundError: If the user has no keys
            SesError: If the configuration set cannot be removed
        """
        keys = self.get_keys(user_id)
        try:
            self._ses(keys).delete_configuration_set(ConfigurationSetName=self.configuration_set_name)
        except ClientError as e:
            if _error_code(e) != 'ConfigurationSetDoesNotExist':
                logger.error("Unable to delete configuration set", user_id=user_id, error=str(e))
                raise SesError("Unable to delete configuration set") from e
        except BotoCoreError as e:
            raise SesError("Unable to delete configuration set") from e

        self.ses_keys_repository.delete_for_user(user_id)
        self.ses_keys_repository.commit()
        logger.info("SES keys deleted", user_id=user_id)

    def get_quota(self, user_id: int) -> Dict[str, float]:
        """
        Raises:
            SesKeysNotFoundError: If the user has no keys
            SesError: If SES cannot be reached
        """
        keys = self.get_keys(user_id)
        try:
            quota = self._ses(keys).get_send_quota()
        except (ClientError, BotoCoreError) as e:
            raise SesError("Unable to fetch send quota") from e
        return {
            'Max24HourSend': quota.get('Max24HourSend'),
            'MaxSendRate': quota.get('MaxSendRate'),
            'SentLast24Hours': quota.get('SentLast24Hours'),
        }

    def configuration_set_exists(self, keys) -> bool:
        """
        Raises:
            SesError: For failures other than a missing configuration set
        """
        try:
            self._ses(keys).describe_configuration_set(ConfigurationSetName=self.configuration_set_name)
            return True
        except ClientError as e:
            if _error_code(e) == 'ConfigurationSetDoesNotExist':
                return False
            raise SesError("Unable to describe configuration set") from e
        except BotoCoreError as e:
            raise SesError("Unable to describe configuration set") from e
