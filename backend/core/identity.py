"""
Caller identity as seen by the allocation ledger.

The ledger never touches the user model directly; it only receives the
``{empCode, name, role, region, branch}`` shape built here.
"""
from dataclasses import dataclass, asdict


@dataclass(frozen=True)
class Identity:
    emp_code: str
    name: str
    role: str = ''
    region: str = ''
    branch: str = ''

    @classmethod
    def from_user(cls, user):
        return cls(
            emp_code=user.emp_code or '',
            name=user.display_name,
            role=user.role or '',
            region=user.region or '',
            branch=user.branch or '',
        )

    def as_dict(self):
        data = asdict(self)
        return {
            'empCode': data['emp_code'],
            'name': data['name'],
            'role': data['role'],
            'region': data['region'],
            'branch': data['branch'],
        }


def identity_from_request(request):
    return Identity.from_user(request.user)
