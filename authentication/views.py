from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .serializers import PrincipalSerializer


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def me(request):
    serializer = PrincipalSerializer(request.user)
    return Response(serializer.data, status=status.HTTP_200_OK)
