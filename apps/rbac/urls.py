"""
RBAC API URLs, mounted under /{locale}/.

Provides endpoints for:
- Landing pages of the operator, admin and superuser areas
- City member management (admin area)
- City audit log (admin area)
- Invitations (admin area)
- Account management (superuser area)
"""
from django.urls import path
from apps.rbac.views import (
    OperatorLandingView,
    AdminLandingView,
    SuperuserLandingView,
    MemberListView,
    MemberDetailView,
    AuditLogListView,
    InvitationListView,
    InvitationDetailView,
    UserListView,
    UserAccountView,
)

app_name = 'rbac'

urlpatterns = [
    # Landing pages
    path('operator/', OperatorLandingView.as_view(), name='operator-landing'),
    path('admin/', AdminLandingView.as_view(), name='admin-landing'),
    path('superuser/', SuperuserLandingView.as_view(), name='superuser-landing'),

    # Admin area
    path('admin/<str:city>/members/', MemberListView.as_view(), name='member-list'),
    path('admin/<str:city>/members/<str:user_id>/', MemberDetailView.as_view(), name='member-detail'),
    path('admin/<str:city>/audit-logs/', AuditLogListView.as_view(), name='audit-log-list'),
    path('admin/<str:city>/invitations/', InvitationListView.as_view(), name='invitation-list'),
    path('admin/<str:city>/invitations/<str:invitation_id>/', InvitationDetailView.as_view(), name='invitation-detail'),

    # Superuser area
    path('superuser/users/', UserListView.as_view(), name='user-list'),
    path('superuser/users/<str:user_id>/', UserAccountView.as_view(), name='user-account'),
]
