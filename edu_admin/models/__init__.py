# Import all models to ensure they're registered with SQLAlchemy
from edu_admin.database import Base
from edu_admin.models.users import Role, User, Student
from edu_admin.models.tenants import Company, School, Branch, BranchAdditional
from edu_admin.models.catalogue import Region, Program, Provider, Subject, DataStructure
from edu_admin.models.materials import Material
from edu_admin.models.licenses import License, LicenseAction, StudentLicense
from edu_admin.models.papers import PastPaperImportSession, PaperSetup, Question
