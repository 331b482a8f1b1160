"""
URL routing for authentication endpoints, mounted under /{locale}/.
"""
from django.urls import path
from apps.rbac.views_auth import InvitationAcceptView, LoginView, LogoutView, MeView

app_name = 'auth'

urlpatterns = [
    path('login', LoginView.as_view(), name='login'),
    path('logout', LogoutView.as_view(), name='logout'),
    path('me', MeView.as_view(), name='me'),
    path('invitations/accept', InvitationAcceptView.as_view(), name='invitation-accept'),
]
