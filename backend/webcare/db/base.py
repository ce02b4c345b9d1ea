# Import Base class
from webcare.db.base_class import Base

# Import all models here so that Base has them registered
# This is needed for Base.metadata.create_all()
from webcare.models.user import User
from webcare.models.client import Client
from webcare.models.website import Website
from webcare.models.update_log import UpdateLog
