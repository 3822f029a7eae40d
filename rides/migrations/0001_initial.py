import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='RepeatingRide',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('ride_group', models.CharField(blank=True, max_length=255, null=True)),
                ('destination', models.CharField(blank=True, max_length=255, null=True)),
                ('distance', models.IntegerField(blank=True, null=True)),
                ('meet_point', models.CharField(blank=True, max_length=255, null=True)),
                ('route', models.CharField(blank=True, max_length=255, null=True)),
                ('leader', models.CharField(blank=True, max_length=255, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('ride_limit', models.IntegerField(default=-1, help_text='Maximum number of riders (-1 = no limit)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('schedule', models.TextField(help_text='iCalendar recurrence rule including DTSTART')),
                ('winter_start_time', models.CharField(blank=True, help_text='Start time (HH:MM) used from November to February', max_length=255, null=True)),
            ],
            options={
                'ordering': ['name', '-distance'],
                'indexes': [models.Index(fields=['name'], name='repeating_ride_name_idx')],
            },
        ),
        migrations.CreateModel(
            name='Ride',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('ride_group', models.CharField(blank=True, max_length=255, null=True)),
                ('destination', models.CharField(blank=True, max_length=255, null=True)),
                ('distance', models.IntegerField(blank=True, null=True)),
                ('meet_point', models.CharField(blank=True, max_length=255, null=True)),
                ('route', models.CharField(blank=True, max_length=255, null=True)),
                ('leader', models.CharField(blank=True, max_length=255, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('ride_limit', models.IntegerField(default=-1, help_text='Maximum number of riders (-1 = no limit)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('ride_date', models.DateTimeField()),
                ('deleted', models.BooleanField(default=False)),
                ('cancelled', models.BooleanField(default=False)),
                ('schedule', models.ForeignKey(blank=True, help_text='Repeating ride this ride was generated from', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='rides', to='rides.repeatingride')),
            ],
            options={
                'ordering': ['ride_date'],
                'indexes': [
                    models.Index(fields=['name'], name='ride_name_idx'),
                    models.Index(fields=['ride_date', 'deleted'], name='ride_date_deleted_idx'),
                ],
            },
        ),
    ]
