"""
AWS SNS SMS delivery for one-time codes.
"""

import logging
import boto3
from botocore.exceptions import ClientError, BotoCoreError
from app.core.config import settings

logger = logging.getLogger(__name__)


class SmsService:
    def __init__(self, sns_client=None):
        if sns_client is not None:
            self.sns_client = sns_client
            return

        session_kwargs = {'region_name': settings.AWS_REGION}
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            session_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
            session_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY

        self.sns_client = boto3.client('sns', **session_kwargs)

    def send_code(self, phone: str, code: str) -> bool:
        """Send a verification code as a transactional SMS."""
        message = f"Your {settings.PROJECT_NAME} verification code is {code}. It expires in {settings.CHALLENGE_EXPIRE_MINUTES} minutes."
        try:
            response = self.sns_client.publish(
                PhoneNumber=phone,
                Message=message,
                MessageAttributes={
                    'AWS.SNS.SMS.SMSType': {'DataType': 'String', 'StringValue': 'Transactional'},
                },
            )
            logger.info(f"SMS code sent (MessageId: {response.get('MessageId')})")
            return True
        except ClientError as e:
            logger.error(f"AWS SNS ClientError: {e.response['Error']['Code']} - {e.response['Error']['Message']}")
            return False
        except BotoCoreError as e:
            logger.error(f"AWS BotoCoreError: {str(e)}")
            return False


# Singleton instance
sms_service = SmsService()
