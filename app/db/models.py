# Importing this module registers every table on Base.metadata.
from app.db.base import Base
import app.models.admin
import app.models.teacher
import app.models.student
import app.models.token
import app.models.conversation
import app.models.message
