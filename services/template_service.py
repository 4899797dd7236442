"""
Template Service
Business logic for email templates. Subject and text parts are stored in the
database; the HTML part is stored in the templates bucket under
templates/{user_id}/{template_id}.
"""

from dataclasses import dataclass
from typing import Any, Optional

from botocore.exceptions import ClientError

from mail_database import Template
from repositories.base_repository import PaginationParams, PaginatedResult
from repositories.template_repository import TemplateRepository
from services import merge_fields
from logging_config import get_logger

logger = get_logger(__name__)


class TemplateNotFoundError(Exception):
    """Raised when template is not found"""
    pass


class TemplateDuplicateError(Exception):
    """Raised when a template with the same name already exists for the user"""
    pass


class TemplatePartParseError(Exception):
    """Raised when one of the template parts is not a valid merge-field template"""

    def __init__(self, part: str):
        super().__init__(f"failed to parse {part}")
        self.part = part


class HTMLPartNotFoundError(Exception):
    """The HTML part is missing from the templates bucket"""
    pass


class HTMLPartInvalidStateError(Exception):
    """The HTML part object is archived and cannot be read"""
    pass


class TemplateStorageError(Exception):
    """Raised when the templates bucket cannot be read or written"""
    pass


@dataclass
class CampaignTemplateData:
    """A template with all three parts compiled, ready for rendering"""
    template: Template
    html_part: Any
    subject_part: Any
    text_part: Any


def template_key(user_id: int, template_id: int) -> str:
    return f"templates/{user_id}/{template_id}"


class TemplateService:
    """Service for managing email templates"""

    def __init__(self, template_repository: TemplateRepository, s3_client, bucket: str):
        """
        Args:
            template_repository: Repository for template rows
            s3_client: boto3 S3 client for the templates bucket
            bucket: Templates bucket name
        """
        self.template_repository = template_repository
        self.s3_client = s3_client
        self.bucket = bucket

    @staticmethod
    def validate_parts(html_part: str, text_part: str, subject_part: str) -> None:
        """
        Compile each part, html first, then text, then subject.

        Raises:
            TemplatePartParseError: Naming the first part that fails
        """
        for part, source, html in (
            ('html_part', html_part, True),
            ('text_part', text_part, False),
            ('subject_part', subject_part, False),
        ):
            try:
                merge_fields.parse(source, html=html)
            except merge_fields.MergeFieldSyntaxError as e:
                raise TemplatePartParseError(part) from e

    def add_template(self, user_id: int, name: str, subject_part: str,
                     html_part: str, text_part: str = '') -> Template:
        """
        Create a template and upload its HTML part.

        The row is flushed first to get its id for the object key, and only
        committed once the upload succeeds.

        Raises:
            TemplateDuplicateError: If the name is taken
            TemplatePartParseError: If a part does not compile
            TemplateStorageError: If the upload fails
        """
        if self.template_repository.get_by_name(name, user_id):
            raise TemplateDuplicateError(f"Template with name '{name}' already exists")

        self.validate_parts(html_part, text_part, subject_part)

        template = self.template_repository.create(
            user_id=user_id,
            name=name,
            subject_part=subject_part,
            text_part=text_part or ''
        )

        try:
            self._put_html(user_id, template.id, html_part)
        except TemplateStorageError:
            self.template_repository.rollback()
            raise

        self.template_repository.commit()
        template.html_part = html_part
        logger.info("Template created", template_id=template.id, user_id=user_id)
        return template

    def update_template(self, template_id: int, user_id: int, name: str, subject_part: str,
                        html_part: str, text_part: str = '') -> Template:
        """
        Replace a template's parts. The HTML is uploaded before the row is updated.

        Raises:
            TemplateNotFoundError: If the template does not exist for the user
            TemplateDuplicateError: If another template already has the name
            TemplatePartParseError: If a part does not compile
            TemplateStorageError: If the upload fails
        """
        template = self.template_repository.get_for_user(template_id, user_id)
        if template is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")

        other = self.template_repository.get_by_name(name, user_id)
        if other is not None and other.id != template.id:
            raise TemplateDuplicateError(f"Template with name '{name}' already exists")

        self.validate_parts(html_part, text_part, subject_part)

        self._put_html(user_id, template.id, html_part)

        self.template_repository.update(
            template,
            name=name,
            subject_part=subject_part,
            text_part=text_part or ''
        )
        self.template_repository.commit()
        template.html_part = html_part
        return template

    def get_template(self, template_id: int, user_id: int) -> Template:
        """
        Load a template with its HTML part.

        Raises:
            TemplateNotFoundError: If the row does not exist
            HTMLPartNotFoundError: If the object is missing
            HTMLPartInvalidStateError: If the object cannot be read in its storage class
            TemplateStorageError: For any other bucket failure
        """
        template = self.template_repository.get_for_user(template_id, user_id)
        if template is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")

        key = template_key(template.user_id, template.id)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            body = response['Body']
            try:
                html = body.read()
            finally:
                body.close()
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            if code in ('NoSuchKey', '404'):
                raise HTMLPartNotFoundError(key) from e
            if code == 'InvalidObjectState':
                raise HTMLPartInvalidStateError(key) from e
            raise TemplateStorageError(f"get object {key}: {code}") from e

        template.html_part = html.decode('utf-8') if isinstance(html, bytes) else html
        return template

    def list_templates(self, user_id: int, pagination: PaginationParams,
                       name: Optional[str] = None) -> PaginatedResult[Template]:
        return self.template_repository.list_for_user(user_id, pagination, name=name)

    def delete_template(self, template_id: int, user_id: int) -> None:
        """
        Delete the HTML object first, then the row.

        Raises:
            TemplateNotFoundError: If the template does not exist for the user
            TemplateStorageError: If the object cannot be deleted
        """
        template = self.template_repository.get_for_user(template_id, user_id)
        if template is None:
            raise TemplateNotFoundError(f"Template {template_id} not found")

        key = template_key(user_id, template_id)
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise TemplateStorageError(f"delete object {key}") from e

        self.template_repository.delete_for_user(template_id, user_id)
        self.template_repository.commit()
        logger.info("Template deleted", template_id=template_id, user_id=user_id)

    def parse_template(self, template_id: int, user_id: int) -> CampaignTemplateData:
        """
        Load a template and compile its parts for a campaign send.

        Raises:
            The get_template errors, or TemplatePartParseError
        """
        template = self.get_template(template_id, user_id)
        try:
            html = merge_fields.parse(template.html_part, html=True)
        except merge_fields.MergeFieldSyntaxError as e:
            raise TemplatePartParseError('html_part') from e
        try:
            text = merge_fields.parse(template.text_part)
        except merge_fields.MergeFieldSyntaxError as e:
            raise TemplatePartParseError('text_part') from e
        try:
            subject = merge_fields.parse(template.subject_part)
        except merge_fields.MergeFieldSyntaxError as e:
            raise TemplatePartParseError('subject_part') from e

        return CampaignTemplateData(
            template=template,
            html_part=html,
            subject_part=subject,
            text_part=text
        )

    def _put_html(self, user_id: int, template_id: int, html_part: str) -> None:
        key = template_key(user_id, template_id)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=(html_part or '').encode('utf-8'),
                ContentType='text/html; charset=utf-8'
            )
        except ClientError as e:
            logger.error("Template upload failed", key=key, error=str(e))
            raise TemplateStorageError(f"put object {key}") from e
