"""
Organizational models — tenants and their internal structure.

Hierarchy::

    Organization
      ├── Department (self-referencing via parent_department_id)
      │     └── Employee
      └── WorkSite
            └── Employee

``OrganizationMember`` links application users to the organizations
they may work in.  Employees are HR records and may optionally be tied
to a user account.
"""

from app.extensions import db
from app.models.base import iso, num, utcnow

INDUSTRY_TYPES = (
    "RESTAURANT",
    "HOTEL",
    "BEAUTY",
    "REPAIR",
    "LOGISTICS",
    "HEALTHCARE",
    "EDUCATION",
    "REAL_ESTATE",
    "EVENTS",
    "IT_SUPPORT",
    "LEGAL",
    "FINANCE",
    "AGRICULTURE",
    "CONSTRUCTION",
    "MARKETING",
    "MANUFACTURING",
    "TOURISM",
    "SECURITY",
    "FITNESS",
    "PET_CARE",
    "RETAIL",
    "INSURANCE",
    "RECRUITMENT",
    "CLEANING",
    "FASHION",
    "AUTOMOTIVE",
    "ENTERTAINMENT",
    "PRINTING",
    "CONSULTING",
    "ENERGY",
    "TELECOM",
    "DESIGN",
    "TRANSLATION",
    "WAREHOUSING",
    "ENVIRONMENT",
    "MINING",
    "FISHERY",
    "FORESTRY",
    "CRAFTS",
    "RESEARCH",
    "AVIATION",
    "IMPORT_EXPORT",
    "MEDIA",
    "NON_PROFIT",
    "RENTAL",
    "BIOTECH",
    "ROBOTICS",
    "SPACE",
    "URBAN_PLANNING",
    "MUSEUM",
)

DEPARTMENT_TYPES = ("OFFICE", "FACTORY", "SITE")

EMPLOYEE_LEVELS = (
    "C_LEVEL",
    "DIRECTOR",
    "MANAGER",
    "LEADER",
    "SPECIALIST",
    "WORKER",
    "INTERN",
)

EMPLOYEE_STATUSES = ("Active", "OnLeave", "Resigned")


class Organization(db.Model):
    """A tenant: every department, employee and service belongs to one."""

    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    industry_type = db.Column(
        db.Enum(*INDUSTRY_TYPES, name="industry_type"), nullable=False
    )
    logo_url = db.Column(db.String(500), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    subscription_plan = db.Column(db.String(50), nullable=False, default="FREE")
    max_users = db.Column(db.Integer, nullable=False, default=10)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # -- Relationships -----------------------------------------------------
    departments = db.relationship("Department", back_populates="organization", lazy="dynamic")
    employees = db.relationship("Employee", back_populates="organization", lazy="dynamic")
    work_sites = db.relationship("WorkSite", back_populates="organization", lazy="dynamic")
    members = db.relationship("OrganizationMember", back_populates="organization")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "industry_type": self.industry_type,
            "logo_url": self.logo_url,
            "website": self.website,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "is_active": self.is_active,
            "subscription_plan": self.subscription_plan,
            "max_users": self.max_users,
            "created_by": self.created_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Organization {self.name}>"


class OrganizationMember(db.Model):
    """Membership of a user in an organization, with an org-level role."""

    __tablename__ = "organization_members"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "user_id", name="uq_org_member"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role = db.Column(db.String(50), nullable=False, default="USER")
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # -- Relationships -----------------------------------------------------
    organization = db.relationship("Organization", back_populates="members")
    user = db.relationship("User", back_populates="memberships")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "role": self.role,
            "joined_at": iso(self.joined_at),
            "is_active": self.is_active,
        }
        if self.user is not None:
            data["email"] = self.user.email
            data["first_name"] = self.user.first_name
            data["last_name"] = self.user.last_name
        return data

    def __repr__(self) -> str:
        return f"<OrganizationMember org={self.organization_id} user={self.user_id}>"


class Department(db.Model):
    """
    An organizational unit.

    Departments nest through ``parent_department_id``; a parent must
    belong to the same organization.  ``manager_id`` references an
    employee of the same organization.
    """

    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.Enum(*DEPARTMENT_TYPES, name="department_type"), nullable=False)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    parent_department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id"), nullable=True
    )
    manager_id = db.Column(
        db.Integer,
        db.ForeignKey("employees.id", use_alter=True, name="fk_department_manager"),
        nullable=True,
    )
    description = db.Column(db.Text, nullable=True)
    budget = db.Column(db.Numeric(15, 2), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # -- Relationships -----------------------------------------------------
    organization = db.relationship("Organization", back_populates="departments")
    parent = db.relationship("Department", remote_side=[id], backref="sub_departments")
    manager = db.relationship("Employee", foreign_keys=[manager_id], post_update=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "organization_id": self.organization_id,
            "parent_department_id": self.parent_department_id,
            "manager_id": self.manager_id,
            "description": self.description,
            "budget": num(self.budget),
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Department {self.name}>"


class WorkSite(db.Model):
    """A physical location where employees work (office, plant, site)."""

    __tablename__ = "work_sites"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.Enum(*DEPARTMENT_TYPES, name="work_site_type"), nullable=False)
    location = db.Column(db.Text, nullable=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    director_id = db.Column(
        db.Integer,
        db.ForeignKey("employees.id", use_alter=True, name="fk_work_site_director"),
        nullable=True,
    )
    safety_regulations = db.Column(db.Text, nullable=True)
    operating_hours = db.Column(db.String(100), nullable=True)
    contact_phone = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # -- Relationships -----------------------------------------------------
    organization = db.relationship("Organization", back_populates="work_sites")
    director = db.relationship("Employee", foreign_keys=[director_id], post_update=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "location": self.location,
            "organization_id": self.organization_id,
            "director_id": self.director_id,
            "safety_regulations": self.safety_regulations,
            "operating_hours": self.operating_hours,
            "contact_phone": self.contact_phone,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<WorkSite {self.name}>"


class Employee(db.Model):
    """
    An HR record within an organization.

    ``status`` moves between Active, OnLeave and Resigned; deleting an
    employee only sets it to Resigned.
    """

    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    role = db.Column(db.String(100), nullable=False)
    level = db.Column(db.Enum(*EMPLOYEE_LEVELS, name="employee_level"), nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    work_site_id = db.Column(db.Integer, db.ForeignKey("work_sites.id"), nullable=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    status = db.Column(
        db.Enum(*EMPLOYEE_STATUSES, name="employee_status"),
        nullable=False,
        default="Active",
    )
    hire_date = db.Column(db.Date, nullable=True)
    salary = db.Column(db.Numeric(15, 2), nullable=True)
    job_description = db.Column(db.Text, nullable=True)
    skills = db.Column(db.JSON, nullable=False, default=list)
    avatar_url = db.Column(db.String(500), nullable=True)
    emergency_contact = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # -- Relationships -----------------------------------------------------
    organization = db.relationship("Organization", back_populates="employees")
    department = db.relationship("Department", foreign_keys=[department_id])
    work_site = db.relationship("WorkSite", foreign_keys=[work_site_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "level": self.level,
            "department_id": self.department_id,
            "work_site_id": self.work_site_id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "status": self.status,
            "hire_date": iso(self.hire_date),
            "salary": num(self.salary),
            "job_description": self.job_description,
            "skills": self.skills or [],
            "avatar_url": self.avatar_url,
            "emergency_contact": self.emergency_contact,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Employee {self.name} ({self.level})>"
