import logging

from rest_framework import generics, permissions, status, viewsets
from rest_framework.authtoken.models import Token
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import User
from .permissions import IsAdminRole
from .serializers import (
    FcmTokenSerializer,
    LoginSerializer,
    RegisterSerializer,
    UserAdminSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)


class LoginView(APIView):
    """
    Email + password sign-in. Returns an API token and the user with its role.
    """
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']

        # accounts created outside the API (createsuperuser, admin) may lack a role
        if not user.role:
            user.role = User.Roles.USER
            user.save(update_fields=['role'])

        token, _ = Token.objects.get_or_create(user=user)
        logger.info("User %s signed in", user.email)
        return Response({'token': token.key, 'user': UserSerializer(user).data})


class LogoutView(APIView):
    def post(self, request):
        Token.objects.filter(user=request.user).delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class UserDetailView(generics.RetrieveUpdateAPIView):
    """
    The signed-in user's own profile.
    """
    serializer_class = UserSerializer

    def get_object(self):
        return self.request.user


class FcmTokenView(APIView):
    """
    Register (or clear, with a blank token) the device token used for push.
    """
    def post(self, request):
        serializer = FcmTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        request.user.fcm_token = serializer.validated_data['token'] or None
        request.user.save(update_fields=['fcm_token', 'updated_at'])
        return Response({'registered': bool(request.user.fcm_token)})


class UserViewSet(viewsets.ModelViewSet):
    """
    User management for admins.
    - Create: email, password, role
    - Update: role / active flag / contact details
    - Delete: anyone but yourself
    """
    queryset = User.objects.all().order_by('email')
    permission_classes = [IsAdminRole]

    def get_serializer_class(self):
        if self.action == 'create':
            return RegisterSerializer
        return UserAdminSerializer

    def perform_destroy(self, instance):
        if instance.pk == self.request.user.pk:
            raise ValidationError({"error": "You cannot delete your own account."})
        logger.info("Admin %s deleted user %s", self.request.user.email, instance.email)
        instance.delete()
